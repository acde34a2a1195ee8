"""
Booking Domain Events

Emitted by the lifecycle transitions and published after the transaction
commits. Notification delivery subscribes to these; the engine itself
never depends on them being handled.
"""

from dataclasses import dataclass
from typing import Any, Optional

from shared.domain.base import DomainEvent


@dataclass
class BookingEvent(DomainEvent):
    booking_id: Any
    resource_id: Any
    user_id: Any
    status: str


@dataclass
class BookingCreated(BookingEvent):
    """
    Event: A booking request was admitted

    Triggers:
    - Acknowledge the request to the requester
    - Ask administrators to review pending requests
    """
    preempted_ids: tuple = ()


@dataclass
class BookingApproved(BookingEvent):
    approved_by: Any = None


@dataclass
class BookingRejected(BookingEvent):
    rejected_by: Any = None
    reason: str = ''


@dataclass
class BookingCancelled(BookingEvent):
    cancelled_by: Any = None
    reason: str = ''
    old_status: str = ''


@dataclass
class BookingPreempted(BookingEvent):
    """
    Event: A booking gave way to a higher priority request

    Suggesting alternatives to the displaced requester is left to the
    subscriber.
    """
    preempted_by_id: Optional[Any] = None
    old_status: str = ''


@dataclass
class BookingStarted(BookingEvent):
    started_by: Any = None


@dataclass
class BookingCompleted(BookingEvent):
    completed_by: Any = None


@dataclass
class BookingExpired(BookingEvent):
    pass


@dataclass
class BookingRescheduled(BookingEvent):
    """
    Event: A booking's interval or details were changed

    ``preempted_ids`` lists bookings displaced by the new interval.
    """
    old_start: Any = None
    old_end: Any = None
    changed_by: Any = None
    preempted_ids: tuple = ()
