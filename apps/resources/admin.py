"""Admin registration for resources."""

from __future__ import annotations

from django.contrib import admin

from .models import Resource, ResourceIssue, TimetableEntry


@admin.register(Resource)
class ResourceAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "location", "capacity", "status", "requires_special_approval")
    list_filter = ("status", "category", "requires_special_approval")
    search_fields = ("name", "location", "category")


@admin.register(ResourceIssue)
class ResourceIssueAdmin(admin.ModelAdmin):
    list_display = ("subject", "resource", "issue_type", "status", "starts_at", "ends_at", "resolved_at")
    list_filter = ("status", "issue_type")
    search_fields = ("subject", "resource__name")


@admin.register(TimetableEntry)
class TimetableEntryAdmin(admin.ModelAdmin):
    list_display = ("course_code", "resource", "day_of_week", "start_time", "end_time", "semester")
    list_filter = ("day_of_week", "semester")
    search_fields = ("course_code", "course_name", "resource__name")
