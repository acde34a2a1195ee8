import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Resource",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255, unique=True)),
                ("description", models.TextField(blank=True)),
                ("location", models.CharField(blank=True, max_length=255)),
                ("category", models.CharField(db_index=True, max_length=100)),
                (
                    "capacity",
                    models.PositiveIntegerField(
                        default=1, help_text="Number of bookings that may overlap at any instant."
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("available", "Available"), ("unavailable", "Unavailable")],
                        default="available",
                        max_length=20,
                    ),
                ),
                ("requires_special_approval", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("capacity__gte", 1)), name="resource_capacity_positive"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ResourceIssue",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("subject", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                (
                    "issue_type",
                    models.CharField(
                        choices=[
                            ("maintenance", "Maintenance"),
                            ("damage", "Damage"),
                            ("safety", "Safety hazard"),
                            ("cleaning", "Cleaning"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("reported", "Reported"),
                            ("in_progress", "In progress"),
                            ("resolved", "Resolved"),
                            ("wont_fix", "Won't fix"),
                        ],
                        default="reported",
                        max_length=20,
                    ),
                ),
                (
                    "starts_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Start of the period the resource is out of service.",
                    ),
                ),
                (
                    "ends_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Expected end of the outage; empty means until resolved.",
                        null=True,
                    ),
                ),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reported_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="reported_issues",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "resource",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="issues",
                        to="resources.resource",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["resource", "status"], name="resource_issue_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="TimetableEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("course_code", models.CharField(max_length=50)),
                ("course_name", models.CharField(blank=True, max_length=255)),
                ("class_section", models.CharField(blank=True, max_length=50)),
                ("semester", models.CharField(blank=True, max_length=50)),
                (
                    "day_of_week",
                    models.PositiveSmallIntegerField(help_text="ISO weekday, 1 = Monday ... 7 = Sunday."),
                ),
                ("start_time", models.TimeField()),
                ("end_time", models.TimeField()),
                ("valid_from", models.DateField(blank=True, null=True)),
                ("valid_until", models.DateField(blank=True, null=True)),
                (
                    "resource",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="timetable_entries",
                        to="resources.resource",
                    ),
                ),
            ],
            options={
                "ordering": ["resource", "day_of_week", "start_time"],
                "indexes": [models.Index(fields=["resource", "day_of_week"], name="timetable_resource_day_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("day_of_week__gte", 1), ("day_of_week__lte", 7)),
                        name="timetable_valid_weekday",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("end_time__gt", models.F("start_time"))),
                        name="timetable_valid_times",
                    ),
                ],
            },
        ),
    ]
