"""Resource domain models."""

from __future__ import annotations

from datetime import datetime

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class ResourceQuerySet(models.QuerySet):
    def bookable(self):
        return self.filter(status=Resource.Status.AVAILABLE)

    def in_category(self, category: str):
        return self.filter(category=category)


class Resource(models.Model):
    """A shared room, lab or piece of equipment that can be reserved."""

    class Status(models.TextChoices):
        AVAILABLE = "available", _("Available")
        UNAVAILABLE = "unavailable", _("Unavailable")

    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=100, db_index=True)
    capacity = models.PositiveIntegerField(
        default=1,
        help_text=_("Number of bookings that may overlap at any instant."),
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    requires_special_approval = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ResourceQuerySet.as_manager()

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(condition=Q(capacity__gte=1), name="resource_capacity_positive"),
        ]

    def __str__(self) -> str:
        return self.name

    @property
    def is_available(self) -> bool:
        return self.status == self.Status.AVAILABLE


class ResourceIssueQuerySet(models.QuerySet):
    def open(self):
        return self.filter(status__in=ResourceIssue.OPEN_STATUSES)

    def blocking(self):
        """Open issues whose type takes the resource out of service."""
        return self.open().filter(issue_type__in=ResourceIssue.BLOCKING_TYPES)

    def blocking_during(self, start: datetime, end: datetime):
        return self.blocking().filter(starts_at__lt=end).filter(
            Q(ends_at__isnull=True) | Q(ends_at__gt=start)
        )


class ResourceIssue(models.Model):
    """A reported problem with a resource (maintenance, damage, ...)."""

    class IssueType(models.TextChoices):
        MAINTENANCE = "maintenance", _("Maintenance")
        DAMAGE = "damage", _("Damage")
        SAFETY = "safety", _("Safety hazard")
        CLEANING = "cleaning", _("Cleaning")
        OTHER = "other", _("Other")

    class Status(models.TextChoices):
        REPORTED = "reported", _("Reported")
        IN_PROGRESS = "in_progress", _("In progress")
        RESOLVED = "resolved", _("Resolved")
        WONT_FIX = "wont_fix", _("Won't fix")

    OPEN_STATUSES = (Status.REPORTED, Status.IN_PROGRESS)
    BLOCKING_TYPES = (IssueType.MAINTENANCE, IssueType.DAMAGE, IssueType.SAFETY)

    resource = models.ForeignKey(Resource, on_delete=models.CASCADE, related_name="issues")
    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reported_issues",
    )
    subject = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    issue_type = models.CharField(max_length=20, choices=IssueType.choices, default=IssueType.OTHER)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.REPORTED)
    starts_at = models.DateTimeField(
        default=timezone.now,
        help_text=_("Start of the period the resource is out of service."),
    )
    ends_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Expected end of the outage; empty means until resolved."),
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ResourceIssueQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["resource", "status"], name="resource_issue_status_idx")]

    def __str__(self) -> str:
        return f"{self.subject} ({self.get_status_display()})"

    def resolve(self, now: datetime | None = None) -> None:
        self.status = self.Status.RESOLVED
        self.resolved_at = now or timezone.now()
        self.save(update_fields=["status", "resolved_at", "updated_at"])


class TimetableEntry(models.Model):
    """
    Fixed weekly occupation imported from the academic timetable.

    Has no owning booking, so the engine treats every occurrence as an
    immovable reservation.
    """

    resource = models.ForeignKey(Resource, on_delete=models.CASCADE, related_name="timetable_entries")
    course_code = models.CharField(max_length=50)
    course_name = models.CharField(max_length=255, blank=True)
    class_section = models.CharField(max_length=50, blank=True)
    semester = models.CharField(max_length=50, blank=True)
    day_of_week = models.PositiveSmallIntegerField(help_text=_("ISO weekday, 1 = Monday ... 7 = Sunday."))
    start_time = models.TimeField()
    end_time = models.TimeField()
    valid_from = models.DateField(null=True, blank=True)
    valid_until = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["resource", "day_of_week", "start_time"]
        constraints = [
            models.CheckConstraint(
                condition=Q(day_of_week__gte=1) & Q(day_of_week__lte=7),
                name="timetable_valid_weekday",
            ),
            models.CheckConstraint(
                condition=Q(end_time__gt=models.F("start_time")),
                name="timetable_valid_times",
            ),
        ]
        indexes = [models.Index(fields=["resource", "day_of_week"], name="timetable_resource_day_idx")]

    def __str__(self) -> str:
        return f"{self.course_code} @ {self.resource_id} (day {self.day_of_week} {self.start_time}-{self.end_time})"
