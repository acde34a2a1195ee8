"""FilterSet definitions for booking listings."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import Booking


class BookingFilterSet(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=Booking.STATUS_CHOICES)
    resource = django_filters.NumberFilter(field_name="resource_id", lookup_expr="exact")
    category = django_filters.CharFilter(field_name="resource__category", lookup_expr="exact")
    booking_type = django_filters.ChoiceFilter(choices=Booking.TYPE_CHOICES)

    # bookings touching [date_from, date_to]
    date_from = django_filters.DateFilter(field_name="end_time", lookup_expr="date__gte")
    date_to = django_filters.DateFilter(field_name="start_time", lookup_expr="date__lte")

    class Meta:
        model = Booking
        fields = ["status", "resource", "category", "booking_type"]
