"""Serializers for the booking domain."""

from __future__ import annotations

from django.contrib.auth import get_user_model  # type: ignore
from rest_framework import serializers  # type: ignore

from apps.resources.models import Resource

from .domain.entities import BookingType
from .models import Booking

# Upper bound of the PositiveSmallIntegerField storing it
PRIORITY_MAX = 32767


class BookingCreateSerializer(serializers.Serializer):
    """Booking request; admission itself is decided by the engine."""

    resource = serializers.PrimaryKeyRelatedField(queryset=Resource.objects.all())
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    booking_type = serializers.ChoiceField(
        choices=[kind.value for kind in BookingType],
        default=BookingType.OTHER.value,
    )
    priority = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=0,
        max_value=PRIORITY_MAX,
        help_text="Only honoured for administrators; derived from the booking type otherwise.",
    )
    purpose = serializers.CharField(required=False, allow_blank=True, default="")
    supporting_document = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    user = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.all(),
        required=False,
        allow_null=True,
        help_text="Administrators only: the user the booking is made for.",
    )

    def validate(self, attrs):  # type: ignore
        if attrs["start_time"] >= attrs["end_time"]:
            raise serializers.ValidationError("End time must be after start time.")
        return attrs


class BookingUpdateSerializer(serializers.Serializer):
    """Partial edit of a booking; omitted fields keep their current value."""

    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    booking_type = serializers.ChoiceField(choices=[kind.value for kind in BookingType], required=False)
    priority = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=PRIORITY_MAX)
    purpose = serializers.CharField(required=False, allow_blank=True)
    supporting_document = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, attrs):  # type: ignore
        start, end = attrs.get("start_time"), attrs.get("end_time")
        if start is not None and end is not None and start >= end:
            raise serializers.ValidationError("End time must be after start time.")
        return attrs


class BookingSerializer(serializers.ModelSerializer):
    """Detailed booking representation."""

    user_id = serializers.ReadOnlyField(source="user.id")
    resource_id = serializers.ReadOnlyField(source="resource.id")
    resource_name = serializers.ReadOnlyField(source="resource.name")
    can_be_cancelled = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "reference",
            "user_id",
            "resource_id",
            "resource_name",
            "start_time",
            "end_time",
            "status",
            "priority",
            "booking_type",
            "purpose",
            "supporting_document",
            "approved_by",
            "approved_at",
            "rejected_by",
            "rejected_at",
            "rejection_reason",
            "cancelled_by",
            "cancelled_at",
            "cancellation_reason",
            "preempted_by",
            "preempted_at",
            "started_at",
            "completed_at",
            "can_be_cancelled",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_can_be_cancelled(self, obj: Booking) -> bool:
        return obj.can_be_cancelled()


class RejectBookingSerializer(serializers.Serializer):
    reason = serializers.CharField()


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class AvailabilityQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    exclude_booking = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):  # type: ignore
        if attrs["start"] >= attrs["end"]:
            raise serializers.ValidationError("End must be after start.")
        return attrs
