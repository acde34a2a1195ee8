"""
Scheduling Engine

Single entry point used by the REST layer, the Celery sweeps and the
management tooling. Read-only availability queries run directly against
the current snapshot; every write is dispatched as a command through the
message bus and runs in its own locked unit of work.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional
import logging

from django.utils import timezone

from apps.resources.models import Resource
from shared.application.message_bus import MessageBus, message_bus
from shared.domain.exceptions import BookingValidationError

from apps.bookings import services
from apps.bookings.application import command_handlers as booking_commands
from apps.bookings.domain.conflicts import Conflict, ConflictReport, detect_conflicts
from apps.bookings.domain.entities import BookingType
from apps.bookings.domain.suggestions import Suggestion

logger = logging.getLogger(__name__)


def bootstrap(bus: MessageBus = message_bus) -> MessageBus:
    """Register every scheduling command handler and event subscriber on ``bus``"""
    from apps.bookings import handlers as booking_handlers
    from apps.keys import handlers as key_handlers
    from apps.keys.application import command_handlers as key_commands

    for command_handlers in (booking_commands.COMMAND_HANDLERS, key_commands.COMMAND_HANDLERS):
        for command_type, handler in command_handlers.items():
            bus.register_command_handler(command_type, handler)

    booking_handlers.register(bus)
    key_handlers.register(bus)
    return bus


@dataclass
class AvailabilityResult:
    available: bool
    report: ConflictReport
    suggestions: List[Suggestion] = field(default_factory=list)

    @property
    def conflicts(self) -> List[Conflict]:
        return self.report.conflicts

    def to_dict(self) -> dict:
        data = self.report.to_dict()
        data['suggestions'] = [suggestion.to_dict() for suggestion in self.suggestions]
        return data


class SchedulingEngine:
    """
    Facade over the booking and key custody use cases

    Usage:
        engine = SchedulingEngine()
        result = engine.check_availability(room.pk, start, end, requester=user)
        if result.available:
            booking = engine.create_booking(room.pk, start, end, user)
    """

    def __init__(self, bus: Optional[MessageBus] = None):
        self.bus = bootstrap(bus or message_bus)

    # ----- queries -----

    def find_conflicts(self, resource_id, start: datetime, end: datetime, exclude_booking_id=None) -> List[Conflict]:
        return self._report(resource_id, start, end, exclude_booking_id)[1].conflicts

    def check_availability(
        self,
        resource_id,
        start: datetime,
        end: datetime,
        requester=None,
        *,
        exclude_booking_id=None,
        with_suggestions: bool = True,
        now: Optional[datetime] = None,
    ) -> AvailabilityResult:
        """
        Can ``requester`` book ``resource_id`` for ``[start, end)``?

        Takes no locks; the answer may be stale by the time a booking is
        submitted, in which case the submission is refused on its own.
        """
        resource, report = self._report(resource_id, start, end, exclude_booking_id)
        suggestions = []
        if not report.available and with_suggestions:
            suggestions = services.suggest(
                resource,
                report.interval,
                requester,
                now=now or timezone.now(),
                exclude_booking_id=exclude_booking_id,
            )
        return AvailabilityResult(available=report.available, report=report, suggestions=suggestions)

    def _report(self, resource_id, start, end, exclude_booking_id):
        if not isinstance(start, datetime) or not isinstance(end, datetime):
            raise BookingValidationError("Start and end time are required")
        if timezone.is_naive(start) or timezone.is_naive(end):
            raise BookingValidationError("Start and end time must include a time zone")
        if start >= end:
            raise BookingValidationError("End time must be after start time")
        try:
            resource = Resource.objects.get(pk=resource_id)
        except (Resource.DoesNotExist, ValueError, TypeError):
            raise BookingValidationError(f"Resource {resource_id} does not exist")

        interval = services.local_interval(start, end)
        schedule = services.load_schedule(resource, interval.start, interval.end)
        return resource, detect_conflicts(schedule, interval, exclude_booking_id=exclude_booking_id)

    # ----- booking commands -----

    def create_booking(
        self,
        resource_id,
        start: datetime,
        end: datetime,
        requester,
        *,
        priority: Optional[int] = None,
        booking_type: str = BookingType.OTHER.value,
        purpose: str = '',
        supporting_document: str = '',
        on_behalf_of: Any = None,
        now: Optional[datetime] = None,
    ):
        return self.bus.handle_command(booking_commands.CreateBookingCommand(
            resource_id=resource_id,
            start_time=start,
            end_time=end,
            requester=requester,
            booking_type=booking_type,
            priority=priority,
            purpose=purpose,
            supporting_document=supporting_document,
            on_behalf_of=on_behalf_of,
            now=now,
        ))

    def update_booking(
        self,
        booking_id,
        actor,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        booking_type: Optional[str] = None,
        priority: Optional[int] = None,
        purpose: Optional[str] = None,
        supporting_document: Optional[str] = None,
        now: Optional[datetime] = None,
    ):
        """Reschedule or edit a booking; omitted fields keep their current value"""
        return self.bus.handle_command(booking_commands.UpdateBookingCommand(
            booking_id=booking_id,
            actor=actor,
            start_time=start,
            end_time=end,
            booking_type=booking_type,
            priority=priority,
            purpose=purpose,
            supporting_document=supporting_document,
            now=now,
        ))

    def approve_booking(self, booking_id, approver, *, now: Optional[datetime] = None):
        return self.bus.handle_command(booking_commands.ApproveBookingCommand(booking_id, approver, now=now))

    def reject_booking(self, booking_id, approver, reason: str, *, now: Optional[datetime] = None):
        return self.bus.handle_command(booking_commands.RejectBookingCommand(booking_id, approver, reason, now=now))

    def cancel_booking(self, booking_id, actor, reason: str = '', *, now: Optional[datetime] = None):
        return self.bus.handle_command(booking_commands.CancelBookingCommand(booking_id, actor, reason, now=now))

    def transition_occupancy(self, booking_id, actor, to_status: str, *, now: Optional[datetime] = None):
        return self.bus.handle_command(
            booking_commands.TransitionOccupancyCommand(booking_id, actor, to_status, now=now)
        )

    def sweep_expire_and_complete(self, now: Optional[datetime] = None) -> int:
        result = self.bus.handle_command(booking_commands.SweepExpireAndCompleteCommand(now=now))
        return result.count

    # ----- key custody commands -----

    def check_out_key(
        self,
        key_id,
        booking_id,
        borrower,
        custodian: Any = None,
        expected_return_at: Optional[datetime] = None,
        *,
        notes: str = '',
        now: Optional[datetime] = None,
    ):
        from apps.keys.application.command_handlers import CheckOutKeyCommand

        return self.bus.handle_command(CheckOutKeyCommand(
            key_id=key_id,
            booking_id=booking_id,
            borrower=borrower,
            custodian=custodian,
            expected_return_at=expected_return_at,
            notes=notes,
            now=now,
        ))

    def check_in_key(self, transaction_id, actor=None, *, now: Optional[datetime] = None):
        from apps.keys.application.command_handlers import CheckInKeyCommand

        return self.bus.handle_command(CheckInKeyCommand(transaction_id, actor, now=now))

    def sweep_overdue_keys(self, now: Optional[datetime] = None, grace_hours: Optional[float] = None) -> int:
        from apps.keys.application.command_handlers import SweepOverdueKeysCommand

        marked = self.bus.handle_command(SweepOverdueKeysCommand(now=now, grace_hours=grace_hours))
        return len(marked)
