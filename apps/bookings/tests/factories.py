"""Builders shared by the booking test modules."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.bookings.domain.entities import (
    BookingSnapshot,
    BookingStatus,
    IssueWindow,
    ResourceSchedule,
    ResourceSnapshot,
    TimetableSlot,
)
from apps.resources.models import Resource
from shared.domain.value_objects import TimeInterval

# A Monday, far enough ahead that nothing starts in the past
MONDAY = datetime(2030, 3, 4, tzinfo=dt_timezone.utc)


def at(hour: int, minute: int = 0, day: datetime = MONDAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


def span(start_hour: float, end_hour: float, day: datetime = MONDAY) -> TimeInterval:
    return TimeInterval(day + timedelta(hours=start_hour), day + timedelta(hours=end_hour))


def room(capacity: int = 1, *, id=1, name="Room A", category="room", available: bool = True) -> ResourceSnapshot:
    return ResourceSnapshot(id=id, name=name, category=category, capacity=capacity, is_available=available)


def held(id, interval: TimeInterval, *, priority: int = 1, status=BookingStatus.APPROVED, user_id=99) -> BookingSnapshot:
    return BookingSnapshot(
        id=id,
        user_id=user_id,
        interval=interval,
        status=BookingStatus(status),
        priority=priority,
        reference=f"RBA-{id}",
    )


def weekly(weekday: int, start: time, end: time, *, id=1, label="CS101") -> TimetableSlot:
    return TimetableSlot(id=id, weekday=weekday, start_time=start, end_time=end, label=label)


def outage(start: datetime, end: datetime | None = None, *, id=1, issue_type="maintenance") -> IssueWindow:
    return IssueWindow(id=id, issue_type=issue_type, subject="Projector repair", starts_at=start, ends_at=end)


def schedule(resource: ResourceSnapshot | None = None, *, bookings=(), timetable=(), issues=()) -> ResourceSchedule:
    return ResourceSchedule(
        resource=resource or room(),
        bookings=list(bookings),
        timetable=list(timetable),
        issues=list(issues),
    )


# ----- database helpers -----

def next_week_at(hour: int, minute: int = 0) -> datetime:
    """Aware datetime one week ahead, in the current time zone."""
    day = timezone.localdate() + timedelta(days=7)
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))


def make_user(username: str, *, admin: bool = False, **extra):
    return get_user_model().objects.create_user(
        username=username,
        email=f"{username}@campus.test",
        password="Secret-pass-123",
        is_staff=admin,
        **extra,
    )


def make_resource(name: str = "Lecture Hall 1", *, capacity: int = 1, category: str = "hall", **extra) -> Resource:
    return Resource.objects.create(name=name, capacity=capacity, category=category, **extra)


def make_booking(user, resource: Resource, start: datetime, end: datetime, *, status: str = "approved", priority: int = 1):
    """Insert a booking row directly, bypassing admission."""
    from apps.bookings.models import Booking

    return Booking.objects.create(
        reference=Booking.generate_reference(start),
        user=user,
        resource=resource,
        start_time=start,
        end_time=end,
        status=status,
        priority=priority,
    )
