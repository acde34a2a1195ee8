"""
Conflict Detector

Decides whether a candidate interval fits on a resource, given a snapshot of
everything that already occupies it:

1. an unavailable resource yields a single fatal conflict;
2. occupying bookings overlapping the candidate are collected;
3. overlapping timetable occurrences are hard conflicts;
4. blocking issues overlapping the candidate are hard conflicts;
5. with no hard conflicts and ``len(bookings) + 1 <= capacity`` the slot is
   available and no conflicts are reported;
6. otherwise every conflict found is reported.

The function is pure; loading the snapshot (and locking, for writes) is the
caller's job.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterable, List, Optional

from shared.domain.value_objects import TimeInterval

from .entities import BookingSnapshot, IssueWindow, ResourceSchedule, TimetableSlot


class ConflictType(StrEnum):
    RESOURCE_UNAVAILABLE = 'resource_unavailable'
    BOOKING = 'booking'
    TIMETABLE = 'timetable'
    RESOURCE_ISSUE = 'resource_issue'
    MAINTENANCE = 'maintenance'


class Severity(StrEnum):
    HIGH = 'high'
    MEDIUM = 'medium'


# Conflicts no priority can override
HARD_CONFLICT_TYPES = frozenset({
    ConflictType.RESOURCE_UNAVAILABLE,
    ConflictType.TIMETABLE,
    ConflictType.RESOURCE_ISSUE,
    ConflictType.MAINTENANCE,
})


@dataclass(frozen=True)
class Conflict:
    """One reason the candidate interval cannot simply be admitted."""
    type: ConflictType
    severity: Severity
    message: str
    resource_id: Any
    interval: Optional[TimeInterval] = None
    booking: Optional[BookingSnapshot] = None
    source_id: Any = None

    @property
    def is_hard(self) -> bool:
        return self.type in HARD_CONFLICT_TYPES

    @property
    def booking_id(self):
        return self.booking.id if self.booking else None

    def to_dict(self) -> dict:
        data = {
            'type': str(self.type),
            'severity': str(self.severity),
            'message': self.message,
            'resource_id': self.resource_id,
            'start_time': self.interval.start.isoformat() if self.interval else None,
            'end_time': self.interval.end.isoformat() if self.interval else None,
        }
        if self.booking is not None:
            data.update({
                'booking_id': self.booking.id,
                'booking_reference': self.booking.reference,
                'booking_status': str(self.booking.status),
                'priority': self.booking.priority,
            })
        elif self.source_id is not None:
            data['source_id'] = self.source_id
        return data


@dataclass
class ConflictReport:
    """Outcome of a conflict scan for one (resource, interval) pair."""
    resource_id: Any
    interval: TimeInterval
    capacity: int
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return not self.conflicts

    @property
    def booking_conflicts(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.type == ConflictType.BOOKING]

    @property
    def hard_conflicts(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.is_hard]

    def to_dict(self) -> dict:
        return {
            'resource_id': self.resource_id,
            'start_time': self.interval.start.isoformat(),
            'end_time': self.interval.end.isoformat(),
            'capacity': self.capacity,
            'available': self.available,
            'conflicts': [conflict.to_dict() for conflict in self.conflicts],
        }


def _booking_conflicts(resource_id, interval: TimeInterval, bookings: Iterable[BookingSnapshot], exclude_booking_id):
    found = []
    for booking in bookings:
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if not booking.is_occupying or not booking.interval.overlaps_with(interval):
            continue
        found.append(Conflict(
            type=ConflictType.BOOKING,
            severity=Severity.MEDIUM,
            message=f"Time slot already booked ({booking.reference or booking.id})",
            resource_id=resource_id,
            interval=booking.interval,
            booking=booking,
        ))
    return found


def _timetable_conflicts(resource_id, interval: TimeInterval, slots: Iterable[TimetableSlot]):
    found = []
    for slot in slots:
        for occurrence in slot.occurrences_within(interval):
            found.append(Conflict(
                type=ConflictType.TIMETABLE,
                severity=Severity.HIGH,
                message=f"Fixed schedule conflict: {slot.label or slot.id}",
                resource_id=resource_id,
                interval=occurrence,
                source_id=slot.id,
            ))
    return found


def _issue_conflicts(resource_id, interval: TimeInterval, issues: Iterable[IssueWindow]):
    found = []
    for issue in issues:
        if not issue.overlaps_with(interval):
            continue
        found.append(Conflict(
            type=ConflictType.MAINTENANCE if issue.is_maintenance else ConflictType.RESOURCE_ISSUE,
            severity=Severity.HIGH,
            message=f"Resource issue: {issue.subject}",
            resource_id=resource_id,
            interval=interval,
            source_id=issue.id,
        ))
    return found


def detect_conflicts(
    schedule: ResourceSchedule,
    interval: TimeInterval,
    exclude_booking_id=None,
) -> ConflictReport:
    """Scan ``schedule`` for everything that stops ``interval`` from being admitted"""
    resource = schedule.resource
    report = ConflictReport(resource_id=resource.id, interval=interval, capacity=resource.capacity)

    if not resource.is_available:
        report.conflicts.append(Conflict(
            type=ConflictType.RESOURCE_UNAVAILABLE,
            severity=Severity.HIGH,
            message=f"Resource {resource.name} is not available for booking",
            resource_id=resource.id,
            interval=interval,
        ))
        return report

    bookings = _booking_conflicts(resource.id, interval, schedule.bookings, exclude_booking_id)
    hard = _timetable_conflicts(resource.id, interval, schedule.timetable)
    hard += _issue_conflicts(resource.id, interval, schedule.issues)

    if not hard and len(bookings) + 1 <= resource.capacity:
        return report

    report.conflicts = hard + bookings
    return report
