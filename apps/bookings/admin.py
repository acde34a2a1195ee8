"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "resource",
        "user",
        "status",
        "priority",
        "booking_type",
        "start_time",
        "end_time",
        "created_at",
    )
    list_filter = ("status", "booking_type", "resource__category")
    search_fields = ("reference", "resource__name", "user__username", "user__email")
    readonly_fields = (
        "reference",
        "status",
        "approved_by",
        "approved_at",
        "rejected_by",
        "rejected_at",
        "cancelled_by",
        "cancelled_at",
        "preempted_by",
        "preempted_at",
        "started_by",
        "started_at",
        "completed_by",
        "completed_at",
        "created_at",
        "updated_at",
    )
