"""Serializers for key custody."""

from __future__ import annotations

from django.contrib.auth import get_user_model  # type: ignore
from django.utils import timezone  # type: ignore
from rest_framework import serializers  # type: ignore

from apps.bookings.models import Booking

from .models import Key, KeyTransaction


class KeySerializer(serializers.ModelSerializer):
    resource_name = serializers.ReadOnlyField(source="resource.name")

    class Meta:
        model = Key
        fields = ["id", "key_code", "description", "resource", "resource_name", "status"]
        read_only_fields = fields


class KeyTransactionSerializer(serializers.ModelSerializer):
    key_code = serializers.ReadOnlyField(source="key.key_code")
    booking_reference = serializers.ReadOnlyField(source="booking.reference")
    effective_status = serializers.SerializerMethodField()
    is_overdue = serializers.SerializerMethodField()

    class Meta:
        model = KeyTransaction
        fields = [
            "id",
            "key",
            "key_code",
            "booking",
            "booking_reference",
            "borrower",
            "custodian",
            "checked_out_at",
            "expected_return_at",
            "checked_in_at",
            "checked_in_by",
            "status",
            "effective_status",
            "is_overdue",
            "overdue_notified_at",
            "notes",
        ]
        read_only_fields = fields

    def get_effective_status(self, obj: KeyTransaction) -> str:
        return str(obj.effective_status(timezone.now()))

    def get_is_overdue(self, obj: KeyTransaction) -> bool:
        return obj.is_overdue(timezone.now())


class CheckOutKeySerializer(serializers.Serializer):
    booking = serializers.PrimaryKeyRelatedField(queryset=Booking.objects.all())
    borrower = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.all(),
        required=False,
        allow_null=True,
        help_text="Defaults to the booking owner.",
    )
    expected_return_at = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
