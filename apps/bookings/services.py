"""Storage-facing services for the scheduling engine.

Loads the snapshots the pure domain functions work on, takes the row
locks that serialise writes per resource, and assembles suggestions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.db import transaction  # type: ignore
from django.db.models import Count, Q  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.resources.models import Resource, ResourceIssue, TimetableEntry
from shared.domain.exceptions import NotFoundError
from shared.domain.value_objects import TimeInterval

from .conf import scheduling_setting
from .domain.entities import (
    BookingStatus,
    IssueWindow,
    RequesterRole,
    ResourceSchedule,
    ResourceSnapshot,
    TimetableSlot,
)
from .domain.suggestions import Suggestion, rank_alternatives, suggest_slots

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .models import Booking

logger = logging.getLogger(__name__)

STAFF_GROUPS = ("staff", "lecturer")

# Bookings that never took place do not count as usage
UNUSED_STATUSES = (BookingStatus.REJECTED, BookingStatus.CANCELLED, BookingStatus.PREEMPTED)


def is_administrator(user) -> bool:
    return bool(user and (user.is_staff or user.is_superuser))


def requester_role(user) -> RequesterRole:
    if is_administrator(user):
        return RequesterRole.ADMIN
    if user is not None and user.groups.filter(name__in=STAFF_GROUPS).exists():
        return RequesterRole.STAFF
    return RequesterRole.MEMBER


def local_interval(start: datetime, end: datetime) -> TimeInterval:
    """Interval in the configured local time zone; timetables are wall-clock."""
    return TimeInterval(timezone.localtime(start), timezone.localtime(end))


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def lock_resource(resource_id) -> Resource:
    """
    Fetch a resource holding its row lock until the transaction ends.

    Every write that depends on a conflict scan goes through here first,
    so admissions on the same resource are serialised.
    """
    try:
        return _lock_queryset_if_possible(Resource.objects.all()).get(pk=resource_id)
    except Resource.DoesNotExist:
        raise NotFoundError(f"Resource {resource_id} not found")


def lock_booking(booking_id) -> "Booking":
    """Lock the booking's resource, then the booking itself."""
    from .models import Booking  # Local import to prevent circular dependency

    try:
        resource_id = Booking.objects.values_list("resource_id", flat=True).get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError(f"Booking {booking_id} not found")

    lock_resource(resource_id)
    return _lock_queryset_if_possible(Booking.objects.all()).get(pk=booking_id)


def resource_snapshot(resource: Resource) -> ResourceSnapshot:
    return ResourceSnapshot(
        id=resource.pk,
        name=resource.name,
        category=resource.category,
        capacity=resource.capacity,
        is_available=resource.is_available,
        location=resource.location,
    )


def load_schedule(resource: Resource, start: datetime, end: datetime) -> ResourceSchedule:
    """Snapshot of everything occupying ``resource`` between ``start`` and ``end``."""
    from .models import Booking  # Local import to prevent circular dependency

    bookings = [
        booking.to_snapshot()
        for booking in Booking.objects.occupying_bookings(resource, start, end)
    ]

    first_day = timezone.localtime(start).date() - timedelta(days=1)
    last_day = timezone.localtime(end).date()
    entries = TimetableEntry.objects.filter(resource=resource).filter(
        Q(valid_from__isnull=True) | Q(valid_from__lte=last_day),
        Q(valid_until__isnull=True) | Q(valid_until__gte=first_day),
    )
    timetable = [
        TimetableSlot(
            id=entry.pk,
            weekday=entry.day_of_week,
            start_time=entry.start_time,
            end_time=entry.end_time,
            label=" ".join(filter(None, [entry.course_code, entry.course_name])),
            valid_from=entry.valid_from,
            valid_until=entry.valid_until,
        )
        for entry in entries
    ]

    issues = [
        IssueWindow(
            id=issue.pk,
            issue_type=issue.issue_type,
            subject=issue.subject,
            starts_at=issue.starts_at,
            ends_at=issue.ends_at,
        )
        for issue in ResourceIssue.objects.filter(resource=resource).blocking_during(start, end)
    ]

    return ResourceSchedule(
        resource=resource_snapshot(resource),
        bookings=bookings,
        timetable=timetable,
        issues=issues,
    )


def recent_usage(user, since: datetime) -> dict:
    """Number of bookings per resource made by ``user`` since ``since``."""
    from .models import Booking  # Local import to prevent circular dependency

    rows = (
        Booking.objects.filter(user=user, start_time__gte=since)
        .exclude(status__in=UNUSED_STATUSES)
        .values("resource_id")
        .annotate(total=Count("id"))
    )
    return {row["resource_id"]: row["total"] for row in rows}


def suggest(
    resource: Resource,
    interval: TimeInterval,
    user=None,
    *,
    now: datetime | None = None,
    exclude_booking_id=None,
    min_capacity: int = 1,
) -> list[Suggestion]:
    """
    Alternatives for a request that cannot be admitted.

    Read-only and advisory: any failure is logged and yields an empty list.
    """
    try:
        return _suggest(
            resource,
            interval,
            user,
            now=now or timezone.now(),
            exclude_booking_id=exclude_booking_id,
            min_capacity=min_capacity,
        )
    except Exception:
        logger.exception("Suggestion generation failed for resource %s", getattr(resource, "pk", resource))
        return []


def _suggest(resource, interval, user, *, now, exclude_booking_id, min_capacity) -> list[Suggestion]:
    from .models import Booking  # Local import to prevent circular dependency

    window = timedelta(hours=scheduling_setting("SUGGESTION_WINDOW_HOURS"))
    step = timedelta(minutes=scheduling_setting("SUGGESTION_STEP_MINUTES"))

    avoid = []
    if user is not None and getattr(user, "pk", None) is not None:
        own = Booking.objects.active_for_user(user, now).overlapping(
            interval.start - window, interval.end + window
        )
        if exclude_booking_id is not None:
            own = own.exclude(pk=exclude_booking_id)
        avoid = [booking.interval for booking in own]

    schedule = load_schedule(resource, interval.start - window, interval.end + window)
    slots = suggest_slots(
        schedule,
        interval,
        window=window,
        step=step,
        limit=scheduling_setting("MAX_SLOT_SUGGESTIONS"),
        now=now,
        avoid=avoid,
        exclude_booking_id=exclude_booking_id,
    )

    usage = {}
    if user is not None and getattr(user, "pk", None) is not None:
        lookback = timedelta(days=scheduling_setting("USAGE_LOOKBACK_DAYS"))
        usage = recent_usage(user, now - lookback)

    under_maintenance = ResourceIssue.objects.open().filter(
        issue_type=ResourceIssue.IssueType.MAINTENANCE
    ).values("resource_id")
    others = (
        Resource.objects.bookable()
        .in_category(resource.category)
        .filter(capacity__gte=min_capacity)
        .exclude(pk=resource.pk)
        .exclude(pk__in=under_maintenance)
    )
    candidates = [
        (load_schedule(other, interval.start, interval.end), usage.get(other.pk, 0))
        for other in others
    ]
    alternatives = rank_alternatives(
        candidates,
        interval,
        reference_capacity=resource.capacity,
        limit=scheduling_setting("MAX_RESOURCE_SUGGESTIONS"),
        min_capacity=min_capacity,
        exclude_resource_id=resource.pk,
    )

    logger.debug(
        "Suggested %d slots and %d resources for resource %s", len(slots), len(alternatives), resource.pk
    )
    return slots + alternatives
