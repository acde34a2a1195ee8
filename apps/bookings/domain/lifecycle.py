"""
Booking Lifecycle

Transition table and guards for booking statuses. The table is the single
source of truth: any (from, to) pair missing from it is rejected. This
module only validates; callers apply the change and record the event.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from shared.domain.exceptions import IneligibleTransitionError
from shared.domain.value_objects import TimeInterval

from .entities import BookingStatus, TERMINAL_STATUSES


@dataclass(frozen=True)
class TransitionContext:
    interval: TimeInterval
    now: datetime
    reason: str = ''


def _always(ctx: TransitionContext) -> Optional[str]:
    return None


def _reason_required(ctx: TransitionContext) -> Optional[str]:
    if not (ctx.reason or '').strip():
        return 'A rejection reason is required'
    return None


def _not_started(ctx: TransitionContext) -> Optional[str]:
    if ctx.interval.has_started(ctx.now):
        return 'Bookings cannot be cancelled once their interval has started'
    return None


def _within_interval(ctx: TransitionContext) -> Optional[str]:
    if not ctx.interval.contains(ctx.now):
        return 'Occupancy can only start within the booked interval'
    return None


def _interval_ended(ctx: TransitionContext) -> Optional[str]:
    if not ctx.interval.has_ended(ctx.now):
        return 'The booked interval has not ended yet'
    return None


Guard = Callable[[TransitionContext], Optional[str]]

# (from, to) -> guard returning an error message or None.
# Approval and preemption guards depend on the conflict scan and are
# evaluated by the command handlers before the transition is applied.
TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], Guard] = {
    (BookingStatus.PENDING, BookingStatus.APPROVED): _always,
    (BookingStatus.PENDING, BookingStatus.REJECTED): _reason_required,
    (BookingStatus.PENDING, BookingStatus.CANCELLED): _not_started,
    (BookingStatus.APPROVED, BookingStatus.CANCELLED): _not_started,
    (BookingStatus.PENDING, BookingStatus.PREEMPTED): _always,
    (BookingStatus.APPROVED, BookingStatus.PREEMPTED): _always,
    (BookingStatus.APPROVED, BookingStatus.IN_USE): _within_interval,
    (BookingStatus.IN_USE, BookingStatus.COMPLETED): _interval_ended,
    (BookingStatus.APPROVED, BookingStatus.EXPIRED): _interval_ended,
}


def allowed_targets(current: BookingStatus) -> set:
    return {target for (source, target) in TRANSITIONS if source == current}


def ensure_transition(
    current: str,
    target: str,
    *,
    interval: TimeInterval,
    now: datetime,
    reason: str = '',
) -> None:
    """Raise IneligibleTransitionError unless ``current -> target`` is allowed now"""
    current, target = BookingStatus(current), BookingStatus(target)

    if current in TERMINAL_STATUSES:
        raise IneligibleTransitionError(
            f"Booking is already {current} and cannot change status",
            current=current, target=target,
        )

    guard = TRANSITIONS.get((current, target))
    if guard is None:
        raise IneligibleTransitionError(
            f"Transition {current} -> {target} is not allowed",
            current=current, target=target,
        )

    problem = guard(TransitionContext(interval=interval, now=now, reason=reason))
    if problem:
        raise IneligibleTransitionError(problem, current=current, target=target)


def can_be_cancelled(status: str, interval: TimeInterval, now: datetime) -> bool:
    """Not terminal, not preempted, still pending/approved and not yet started"""
    try:
        ensure_transition(status, BookingStatus.CANCELLED, interval=interval, now=now)
    except IneligibleTransitionError:
        return False
    return True


# Statuses whose interval, type and purpose may still be changed
EDITABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.APPROVED})


def ensure_editable(status: str, interval: TimeInterval, now: datetime) -> None:
    """Only pending or approved bookings that have not started can be rescheduled"""
    current = BookingStatus(status)
    if current not in EDITABLE_STATUSES:
        raise IneligibleTransitionError(
            f"Cannot modify a {current} booking",
            current=current,
        )
    if interval.has_started(now):
        raise IneligibleTransitionError(
            "Bookings cannot be modified once their interval has started",
            current=current,
        )
