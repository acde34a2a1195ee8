"""
Booking Domain Entities

Core types of the scheduling domain, free of any ORM dependency:
- BookingStatus: states of the booking lifecycle
- BookingType: purpose classification used to derive priority
- Snapshots: read-only views of the rows the conflict detector works on
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import StrEnum
from typing import Any, Iterator, Optional

from shared.domain.value_objects import TimeInterval


class BookingStatus(StrEnum):
    """
    Booking Status Finite State Machine

    State transitions:
    - PENDING -> APPROVED (admin approval, no blocking conflicts)
    - PENDING -> REJECTED (admin rejection with reason)
    - PENDING/APPROVED -> CANCELLED (owner or admin, before start)
    - PENDING/APPROVED -> PREEMPTED (higher priority request admitted)
    - APPROVED -> IN_USE (occupancy started within the interval)
    - IN_USE -> COMPLETED (occupancy ended, at or after interval end)
    - APPROVED -> EXPIRED (interval ended without occupancy)
    """
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    PREEMPTED = 'preempted'
    IN_USE = 'in_use'
    COMPLETED = 'completed'
    EXPIRED = 'expired'

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ').capitalize()

    @property
    def is_occupying(self) -> bool:
        return self in OCCUPYING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Statuses that count against a resource's capacity
OCCUPYING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.APPROVED, BookingStatus.IN_USE})

TERMINAL_STATUSES = frozenset({
    BookingStatus.REJECTED,
    BookingStatus.CANCELLED,
    BookingStatus.PREEMPTED,
    BookingStatus.COMPLETED,
    BookingStatus.EXPIRED,
})

# Statuses a higher priority request may take over
PREEMPTABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.APPROVED})


class BookingType(StrEnum):
    """Purpose classification; each type carries a base priority."""
    UNIVERSITY_ACTIVITY = 'university_activity'
    CLASS = 'class'
    STAFF_MEETING = 'staff_meeting'
    CHURCH_MEETING = 'church_meeting'
    STUDENT_MEETING = 'student_meeting'
    OTHER = 'other'

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ').capitalize()

    @property
    def base_priority(self) -> int:
        return BASE_PRIORITIES[self]


BASE_PRIORITIES = {
    BookingType.UNIVERSITY_ACTIVITY: 6,
    BookingType.CLASS: 5,
    BookingType.STAFF_MEETING: 4,
    BookingType.CHURCH_MEETING: 3,
    BookingType.STUDENT_MEETING: 2,
    BookingType.OTHER: 1,
}


class RequesterRole(StrEnum):
    ADMIN = 'admin'
    STAFF = 'staff'
    MEMBER = 'member'


ROLE_PRIORITY_BONUS = {
    RequesterRole.ADMIN: 3,
    RequesterRole.STAFF: 2,
    RequesterRole.MEMBER: 0,
}


@dataclass(frozen=True)
class ResourceSnapshot:
    """The fields of a resource the engine decides on."""
    id: Any
    name: str
    category: str
    capacity: int
    is_available: bool = True
    location: str = ''


@dataclass(frozen=True)
class BookingSnapshot:
    """An existing booking as seen by the conflict detector."""
    id: Any
    user_id: Any
    interval: TimeInterval
    status: BookingStatus
    priority: int
    reference: str = ''

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def is_preemptable(self) -> bool:
        return self.status in PREEMPTABLE_STATUSES


@dataclass(frozen=True)
class TimetableSlot:
    """
    Recurring weekly occupation

    ``weekday`` follows ISO numbering (1 = Monday). Times are wall-clock
    times in the time zone of the interval being checked.
    """
    id: Any
    weekday: int
    start_time: time
    end_time: time
    label: str = ''
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None

    def is_valid_on(self, day: date) -> bool:
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return day.isoweekday() == self.weekday

    def occurrences_within(self, interval: TimeInterval) -> Iterator[TimeInterval]:
        """Yield every occurrence of this slot that overlaps ``interval``"""
        tz = interval.start.tzinfo
        day = interval.start.date() - timedelta(days=1)
        last_day = interval.end.date()
        while day <= last_day:
            if self.is_valid_on(day):
                occurrence = TimeInterval(
                    datetime.combine(day, self.start_time, tzinfo=tz),
                    datetime.combine(day, self.end_time, tzinfo=tz),
                )
                if occurrence.overlaps_with(interval):
                    yield occurrence
            day += timedelta(days=1)


@dataclass(frozen=True)
class IssueWindow:
    """An open issue that takes a resource out of service for a period."""
    id: Any
    issue_type: str
    subject: str
    starts_at: datetime
    ends_at: Optional[datetime] = None

    @property
    def is_maintenance(self) -> bool:
        return self.issue_type == 'maintenance'

    def overlaps_with(self, interval: TimeInterval) -> bool:
        if self.starts_at >= interval.end:
            return False
        return self.ends_at is None or self.ends_at > interval.start


@dataclass
class ResourceSchedule:
    """Everything known about one resource around a requested window."""
    resource: ResourceSnapshot
    bookings: list = field(default_factory=list)
    timetable: list = field(default_factory=list)
    issues: list = field(default_factory=list)
