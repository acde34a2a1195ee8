"""
Booking Command Handlers

These are the use cases for the booking domain.
They orchestrate domain operations within transactions.

Commands:
- CreateBookingCommand: Admit a new booking (with preemption if allowed)
- UpdateBookingCommand: Reschedule or edit a booking that has not started
- ApproveBookingCommand: Approve a pending booking
- RejectBookingCommand: Reject a pending booking with a reason
- CancelBookingCommand: Cancel a booking before it starts
- TransitionOccupancyCommand: Start or finish occupancy
- SweepExpireAndCompleteCommand: Expire and complete bookings whose interval ended
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional
import logging

from django.utils import timezone

from apps.resources.models import Resource
from shared.application.uow import DjangoUnitOfWork
from shared.domain.value_objects import TimeInterval
from shared.domain.exceptions import (
    BookingConflictError,
    BookingValidationError,
    IneligibleTransitionError,
    NotFoundError,
    SchedulingError,
)
from apps.bookings import services
from apps.bookings.conf import scheduling_setting
from apps.bookings.domain.conflicts import detect_conflicts
from apps.bookings.domain.entities import BookingStatus, BookingType
from apps.bookings.domain.events import BookingCreated
from apps.bookings.domain.lifecycle import ensure_editable
from apps.bookings.domain.priority import derive_priority, try_preempt
from apps.bookings.models import Booking

logger = logging.getLogger(__name__)


# ===== Commands =====

@dataclass
class CreateBookingCommand:
    """
    Command to create a new booking

    ``priority`` is derived from the booking type and the requester's role
    when left empty. ``now`` pins the clock for validation and audit columns.
    """
    resource_id: Any
    start_time: datetime
    end_time: datetime
    requester: Any
    booking_type: str = BookingType.OTHER.value
    priority: Optional[int] = None
    purpose: str = ''
    supporting_document: str = ''
    on_behalf_of: Any = None
    now: Optional[datetime] = None


@dataclass
class UpdateBookingCommand:
    """
    Command to change a booking's interval or details

    Fields left as ``None`` keep their current value.
    """
    booking_id: Any
    actor: Any
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    booking_type: Optional[str] = None
    priority: Optional[int] = None
    purpose: Optional[str] = None
    supporting_document: Optional[str] = None
    now: Optional[datetime] = None


@dataclass
class ApproveBookingCommand:
    """Command to approve a pending booking"""
    booking_id: Any
    approver: Any
    now: Optional[datetime] = None


@dataclass
class RejectBookingCommand:
    """Command to reject a pending booking"""
    booking_id: Any
    approver: Any
    reason: str
    now: Optional[datetime] = None


@dataclass
class CancelBookingCommand:
    """Command to cancel a booking"""
    booking_id: Any
    actor: Any
    reason: str = ''
    now: Optional[datetime] = None


@dataclass
class TransitionOccupancyCommand:
    """Command to move a booking to in_use or completed"""
    booking_id: Any
    actor: Any
    to_status: str
    now: Optional[datetime] = None


@dataclass
class SweepExpireAndCompleteCommand:
    """Command to expire unused and complete finished bookings"""
    now: Optional[datetime] = None


@dataclass
class SweepResult:
    expired: list = field(default_factory=list)
    completed: list = field(default_factory=list)
    failed: list = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.expired) + len(self.completed)


# ===== Shared steps =====

def validate_interval(start: Optional[datetime], end: Optional[datetime], now: datetime) -> TimeInterval:
    """Check a requested interval and return it in the local time zone"""
    if start is None or end is None:
        raise BookingValidationError("Start and end time are required")
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        raise BookingValidationError("Start and end time must be datetimes")
    if timezone.is_naive(start) or timezone.is_naive(end):
        raise BookingValidationError("Start and end time must include a time zone")
    if start >= end:
        raise BookingValidationError("End time must be after start time")

    grace = timedelta(minutes=scheduling_setting('PAST_START_GRACE_MINUTES'))
    if start < now - grace:
        raise BookingValidationError("Bookings cannot start in the past")

    min_duration = timedelta(minutes=scheduling_setting('MIN_DURATION_MINUTES'))
    if end - start < min_duration:
        raise BookingValidationError(
            f"Bookings must last at least {scheduling_setting('MIN_DURATION_MINUTES')} minutes"
        )

    return services.local_interval(start, end)


def lock_requested_resource(resource_id) -> Resource:
    try:
        return services.lock_resource(resource_id)
    except (NotFoundError, ValueError, TypeError):
        raise BookingValidationError(f"Resource {resource_id} does not exist")


def normalise_booking_type(value: str) -> str:
    try:
        return BookingType(value).value
    except ValueError:
        return BookingType.OTHER.value


def preempt_victims(uow: DjangoUnitOfWork, victim_ids, winner: Booking, now: datetime) -> None:
    for victim in Booking.objects.filter(pk__in=victim_ids):
        victim.preempt(winner, now)
        uow.collect_events(victim)
        logger.info("Booking %s preempted by %s", victim.reference, winner.reference)
        if victim.key_transactions.open_transactions().exists():
            # Custody stays with the displaced booking until the key comes back
            logger.warning(
                "Preempted booking %s still holds a checked out key; %s cannot be issued it until check-in",
                victim.reference, winner.reference,
            )


# ===== Command Handlers =====

class CreateBookingHandler:
    """
    Handler for CreateBooking command

    Strategy:
    1. Validate the request (interval, duration, past start, active limit)
    2. Start database transaction (atomic)
    3. Lock the resource row (SELECT FOR UPDATE)
    4. Scan for conflicts and ask the priority resolver
    5. Create the booking and preempt the displaced bookings
    6. Commit; events are published after commit
    7. When the request is refused, build suggestions outside the lock

    Administrators may book on behalf of another user; the booking then
    belongs to that user and counts against their active limit.
    """

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: CreateBookingCommand) -> Booking:
        now = command.now or timezone.now()
        requester = command.requester
        owner = self._owner(command)

        interval = self._validate(command, owner, now)

        if command.priority is not None:
            priority = int(command.priority)
        else:
            priority = derive_priority(command.booking_type, services.requester_role(requester))

        logger.info(
            "Creating booking on resource %s for user %s, %s (priority %s)",
            command.resource_id, getattr(owner, 'pk', None), interval, priority,
        )

        with self.uow_factory() as uow:
            resource = lock_requested_resource(command.resource_id)

            schedule = services.load_schedule(resource, interval.start, interval.end)
            report = detect_conflicts(schedule, interval)
            outcome = try_preempt(priority, report)

            booking = None
            if outcome.admitted:
                initial = BookingStatus.APPROVED if services.is_administrator(requester) else BookingStatus.PENDING
                booking = Booking(
                    reference=Booking.generate_reference(now),
                    user=owner,
                    resource=resource,
                    start_time=interval.start,
                    end_time=interval.end,
                    status=initial.value,
                    priority=priority,
                    booking_type=normalise_booking_type(command.booking_type),
                    purpose=command.purpose,
                    supporting_document=command.supporting_document,
                )
                if initial == BookingStatus.APPROVED:
                    booking.approved_by = requester
                    booking.approved_at = now
                booking.save()

                preempt_victims(uow, outcome.victim_ids, booking, now)

                booking.add_event(BookingCreated(
                    aggregate_id=booking.pk,
                    booking_id=booking.pk,
                    resource_id=resource.pk,
                    user_id=booking.user_id,
                    status=booking.status,
                    preempted_ids=tuple(outcome.victim_ids),
                ))
                uow.collect_events(booking)

        if booking is None:
            conflicts = report.conflicts
            suggestions = services.suggest(resource, interval, owner, now=now)
            logger.info(
                "Booking request on resource %s refused: %s (%d conflicts)",
                command.resource_id, outcome.reason, len(conflicts),
            )
            raise BookingConflictError(
                outcome.reason or 'The requested slot is not available',
                conflicts=conflicts,
                suggestions=suggestions,
            )

        logger.info("Booking created successfully: %s (ID: %s)", booking.reference, booking.pk)
        return booking

    @staticmethod
    def _owner(command: CreateBookingCommand):
        if command.on_behalf_of is None:
            return command.requester
        if not services.is_administrator(command.requester):
            raise BookingValidationError("Only administrators can book on behalf of another user")
        return command.on_behalf_of

    def _validate(self, command: CreateBookingCommand, owner, now: datetime) -> TimeInterval:
        interval = validate_interval(command.start_time, command.end_time, now)

        if command.priority is not None and int(command.priority) < 0:
            raise BookingValidationError("Priority cannot be negative")

        limit = scheduling_setting('MAX_ACTIVE_BOOKINGS')
        if limit and Booking.objects.active_for_user(owner, now).count() >= limit:
            raise BookingValidationError(f"You cannot hold more than {limit} active bookings")

        return interval


class UpdateBookingHandler:
    """
    Handler for rescheduling or editing a booking

    The booking's resource is locked, the new interval is scanned with the
    booking itself excluded and the priority resolver decides as it does
    for a new request. A refused edit leaves the booking untouched. The
    status is kept: a pending booking still awaits review.
    """

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: UpdateBookingCommand) -> Booking:
        now = command.now or timezone.now()
        logger.info("Updating booking %s", command.booking_id)

        with self.uow_factory() as uow:
            booking = services.lock_booking(command.booking_id)
            ensure_editable(booking.status, booking.interval, now)

            start = command.start_time or booking.start_time
            end = command.end_time or booking.end_time
            interval = validate_interval(start, end, now)

            booking_type = normalise_booking_type(command.booking_type or booking.booking_type)
            if command.priority is not None:
                if int(command.priority) < 0:
                    raise BookingValidationError("Priority cannot be negative")
                priority = int(command.priority)
            elif command.booking_type and booking_type != booking.booking_type:
                priority = derive_priority(booking_type, services.requester_role(booking.user))
            else:
                priority = booking.priority

            resource = booking.resource
            schedule = services.load_schedule(resource, interval.start, interval.end)
            report = detect_conflicts(schedule, interval, exclude_booking_id=booking.pk)
            outcome = try_preempt(priority, report)

            if outcome.admitted:
                preempt_victims(uow, outcome.victim_ids, booking, now)
                booking.reschedule(
                    command.actor,
                    interval.start,
                    interval.end,
                    now,
                    priority=priority,
                    booking_type=booking_type,
                    purpose=booking.purpose if command.purpose is None else command.purpose,
                    supporting_document=(
                        booking.supporting_document
                        if command.supporting_document is None
                        else command.supporting_document
                    ),
                    preempted_ids=tuple(outcome.victim_ids),
                )
                uow.collect_events(booking)

        if not outcome.admitted:
            suggestions = services.suggest(
                resource, interval, booking.user, now=now, exclude_booking_id=booking.pk,
            )
            logger.info("Update of booking %s refused: %s", booking.reference, outcome.reason)
            raise BookingConflictError(
                outcome.reason or 'The requested slot is not available',
                conflicts=report.conflicts,
                suggestions=suggestions,
            )

        logger.info("Booking %s updated", booking.reference)
        return booking


class ApproveBookingHandler:
    """Handler for approving a pending booking"""

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: ApproveBookingCommand) -> Booking:
        now = command.now or timezone.now()
        logger.info("Approving booking %s", command.booking_id)

        with self.uow_factory() as uow:
            booking = services.lock_booking(command.booking_id)

            # Guard order: an ineligible status wins over a conflict
            if booking.status != BookingStatus.PENDING:
                raise IneligibleTransitionError(
                    f"Only pending bookings can be approved (booking is {booking.status})",
                    current=booking.status, target=BookingStatus.APPROVED,
                )

            schedule = services.load_schedule(booking.resource, booking.start_time, booking.end_time)
            report = detect_conflicts(schedule, booking.interval, exclude_booking_id=booking.pk)
            if not report.available:
                raise BookingConflictError(
                    f"Booking {booking.reference} conflicts with the current schedule",
                    conflicts=report.conflicts,
                )

            booking.approve(command.approver, now)
            uow.collect_events(booking)

        logger.info("Booking %s approved", booking.reference)
        return booking


class RejectBookingHandler:
    """Handler for rejecting a pending booking"""

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: RejectBookingCommand) -> Booking:
        now = command.now or timezone.now()
        logger.info("Rejecting booking %s", command.booking_id)

        with self.uow_factory() as uow:
            booking = services.lock_booking(command.booking_id)
            booking.reject(command.approver, command.reason, now)
            uow.collect_events(booking)

        logger.info("Booking %s rejected", booking.reference)
        return booking


class CancelBookingHandler:
    """Handler for cancelling booking"""

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: CancelBookingCommand) -> Booking:
        now = command.now or timezone.now()
        logger.info("Cancelling booking %s, reason: %s", command.booking_id, command.reason)

        with self.uow_factory() as uow:
            booking = services.lock_booking(command.booking_id)
            booking.cancel(command.actor, now, command.reason)
            uow.collect_events(booking)

        logger.info("Booking %s cancelled successfully", booking.reference)
        return booking


class TransitionOccupancyHandler:
    """Handler for occupancy start (approved -> in_use) and end (in_use -> completed)"""

    ALLOWED_TARGETS = (BookingStatus.IN_USE, BookingStatus.COMPLETED)

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: TransitionOccupancyCommand) -> Booking:
        now = command.now or timezone.now()
        try:
            target = BookingStatus(command.to_status)
        except ValueError:
            target = None
        if target not in self.ALLOWED_TARGETS:
            raise IneligibleTransitionError(
                f"Occupancy can only move to in_use or completed, not {command.to_status}",
                target=str(command.to_status),
            )

        logger.info("Moving booking %s to %s", command.booking_id, target)

        with self.uow_factory() as uow:
            booking = services.lock_booking(command.booking_id)
            if target == BookingStatus.IN_USE:
                booking.start_use(command.actor, now)
            else:
                booking.complete(command.actor, now)
            uow.collect_events(booking)

        return booking


class SweepExpireAndCompleteHandler:
    """
    Handler for the periodic expiry/completion sweep

    Each row is handled in its own unit of work: the booking is re-read
    under lock and re-checked, so a concurrent user action that got there
    first simply makes the row ineligible. Failing rows are logged and
    skipped. Re-running the sweep with nothing due is a no-op.
    """

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: SweepExpireAndCompleteCommand) -> SweepResult:
        now = command.now or timezone.now()
        result = SweepResult()

        for booking_id in list(Booking.objects.due_for_expiry(now).values_list('pk', flat=True)):
            if self._process(booking_id, BookingStatus.APPROVED, now, result):
                result.expired.append(booking_id)

        for booking_id in list(Booking.objects.due_for_completion(now).values_list('pk', flat=True)):
            if self._process(booking_id, BookingStatus.IN_USE, now, result):
                result.completed.append(booking_id)

        if result.count or result.failed:
            logger.info(
                "Sweep finished: %d expired, %d completed, %d failed",
                len(result.expired), len(result.completed), len(result.failed),
            )
        return result

    def _process(self, booking_id, expected: BookingStatus, now: datetime, result: SweepResult) -> bool:
        try:
            with self.uow_factory() as uow:
                booking = services.lock_booking(booking_id)
                if booking.status != expected or booking.end_time > now:
                    return False
                if expected == BookingStatus.APPROVED:
                    booking.expire(now)
                else:
                    booking.complete(None, now)
                uow.collect_events(booking)
            return True
        except (SchedulingError, Resource.DoesNotExist, Booking.DoesNotExist) as exc:
            logger.warning("Skipping booking %s during sweep: %s", booking_id, exc)
        except Exception:
            logger.error("Error sweeping booking %s", booking_id, exc_info=True)
        result.failed.append(booking_id)
        return False


# Handler instances registered on the message bus
create_booking_handler = CreateBookingHandler()
update_booking_handler = UpdateBookingHandler()
approve_booking_handler = ApproveBookingHandler()
reject_booking_handler = RejectBookingHandler()
cancel_booking_handler = CancelBookingHandler()
transition_occupancy_handler = TransitionOccupancyHandler()
sweep_expire_and_complete_handler = SweepExpireAndCompleteHandler()

COMMAND_HANDLERS = {
    CreateBookingCommand: create_booking_handler.handle,
    UpdateBookingCommand: update_booking_handler.handle,
    ApproveBookingCommand: approve_booking_handler.handle,
    RejectBookingCommand: reject_booking_handler.handle,
    CancelBookingCommand: cancel_booking_handler.handle,
    TransitionOccupancyCommand: transition_occupancy_handler.handle,
    SweepExpireAndCompleteCommand: sweep_expire_and_complete_handler.handle,
}
