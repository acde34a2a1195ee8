"""Admin registration for key custody."""

from __future__ import annotations

from django.contrib import admin

from .models import Key, KeyTransaction


@admin.register(Key)
class KeyAdmin(admin.ModelAdmin):
    list_display = ("key_code", "resource", "status")
    list_filter = ("status",)
    search_fields = ("key_code", "resource__name")


@admin.register(KeyTransaction)
class KeyTransactionAdmin(admin.ModelAdmin):
    list_display = (
        "key",
        "booking",
        "borrower",
        "status",
        "checked_out_at",
        "expected_return_at",
        "checked_in_at",
        "overdue_notified_at",
    )
    list_filter = ("status",)
    search_fields = ("key__key_code", "booking__reference", "borrower__username")
    readonly_fields = ("status", "checked_in_at", "checked_in_by", "overdue_notified_at")
