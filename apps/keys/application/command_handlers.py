"""
Key Custody Command Handlers

Commands:
- CheckOutKeyCommand: Hand a key out for an approved booking
- CheckInKeyCommand: Record the key's return
- SweepOverdueKeysCommand: Persist the overdue status of late keys

Every write locks the key row, so checkout, check-in and the sweep are
serialised per key. Checkout first takes the booking's resource and
booking locks, the same ones preemption and cancellation hold, so the
booking cannot change status while a key is being issued for it. No
custody write takes a resource lock after a key lock.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import (
    BookingValidationError,
    KeyAlreadyCheckedOutError,
    NotFoundError,
    SchedulingError,
)
from apps.bookings import services as booking_services
from apps.bookings.conf import scheduling_setting
from apps.keys.domain.custody import CHECKOUT_BOOKING_STATUSES, CustodyStatus
from apps.keys.models import Key, KeyTransaction

logger = logging.getLogger(__name__)


# ===== Commands =====

@dataclass
class CheckOutKeyCommand:
    """Command to check a key out; expected return defaults to the booking end"""
    key_id: Any
    booking_id: Any
    borrower: Any
    custodian: Any = None
    expected_return_at: Optional[datetime] = None
    notes: str = ''
    now: Optional[datetime] = None


@dataclass
class CheckInKeyCommand:
    """Command to check a key back in"""
    transaction_id: Any
    actor: Any = None
    now: Optional[datetime] = None


@dataclass
class SweepOverdueKeysCommand:
    """Command to mark late keys as overdue"""
    now: Optional[datetime] = None
    grace_hours: Optional[float] = None


# ===== Helpers =====

def lock_key(key_id) -> Key:
    try:
        return Key.objects.select_for_update().get(pk=key_id)
    except Key.DoesNotExist:
        raise NotFoundError(f"Key {key_id} not found")


def lock_transaction(transaction_id) -> KeyTransaction:
    """Lock the key, then the transaction, so every custody write takes the same order."""
    try:
        key_id = KeyTransaction.objects.values_list('key_id', flat=True).get(pk=transaction_id)
    except KeyTransaction.DoesNotExist:
        raise NotFoundError(f"Key transaction {transaction_id} not found")

    lock_key(key_id)
    return KeyTransaction.objects.select_for_update().get(pk=transaction_id)


# ===== Command Handlers =====

class CheckOutKeyHandler:
    """
    Handler for key checkout

    Rules:
    - the key exists and is not lost
    - the key has no open (checked out or overdue) transaction
    - the booking is on the key's resource and is approved or in use
    - the expected return lies in the future
    """

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: CheckOutKeyCommand) -> KeyTransaction:
        now = command.now or timezone.now()
        logger.info("Checking out key %s for booking %s", command.key_id, command.booking_id)

        with self.uow_factory() as uow:
            try:
                booking = booking_services.lock_booking(command.booking_id)
            except (NotFoundError, ValueError, TypeError):
                raise BookingValidationError(f"Booking {command.booking_id} does not exist")

            try:
                key = lock_key(command.key_id)
            except (NotFoundError, ValueError, TypeError):
                raise BookingValidationError(f"Key {command.key_id} does not exist")

            if key.status == Key.Status.LOST:
                raise BookingValidationError(f"Key {key.key_code} is reported lost")

            current = KeyTransaction.objects.open_transactions().filter(key=key).first()
            if current is not None:
                raise KeyAlreadyCheckedOutError(
                    f"Key {key.key_code} is already checked out",
                    transaction_id=current.pk,
                )

            if booking.resource_id != key.resource_id:
                raise BookingValidationError(
                    f"Booking {booking.reference} is not for the resource key {key.key_code} opens"
                )
            if booking.status not in CHECKOUT_BOOKING_STATUSES:
                raise BookingValidationError(
                    f"Keys can only be issued for approved bookings (booking is {booking.status})"
                )

            expected = command.expected_return_at or booking.end_time
            if expected <= now:
                raise BookingValidationError("Expected return time must be in the future")

            try:
                with transaction.atomic():
                    key_transaction = KeyTransaction.objects.create(
                        key=key,
                        booking=booking,
                        borrower=command.borrower,
                        custodian=command.custodian,
                        checked_out_at=now,
                        expected_return_at=expected,
                        status=CustodyStatus.CHECKED_OUT.value,
                        notes=command.notes,
                    )
            except IntegrityError:
                # Partial unique index caught a concurrent checkout
                raise KeyAlreadyCheckedOutError(f"Key {key.key_code} is already checked out")

            key.status = Key.Status.CHECKED_OUT
            key.save(update_fields=["status", "updated_at"])

            key_transaction.record_checkout()
            uow.collect_events(key_transaction)

        logger.info("Key %s checked out (transaction %s)", key.key_code, key_transaction.pk)
        return key_transaction


class CheckInKeyHandler:
    """Handler for key check-in; an overdue transaction closes as returned too"""

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: CheckInKeyCommand) -> KeyTransaction:
        now = command.now or timezone.now()
        logger.info("Checking in key transaction %s", command.transaction_id)

        with self.uow_factory() as uow:
            key_transaction = lock_transaction(command.transaction_id)
            key_transaction.check_in(command.actor, now)

            key = key_transaction.key
            if key.status == Key.Status.CHECKED_OUT:
                key.status = Key.Status.AVAILABLE
                key.save(update_fields=["status", "updated_at"])

            uow.collect_events(key_transaction)

        return key_transaction


class SweepOverdueKeysHandler:
    """
    Handler for the overdue sweep

    Only rows still ``checked_out`` are touched, so re-running the sweep
    marks (and notifies) each transaction at most once. A check-in that
    holds the key lock first makes the row ineligible.
    """

    def __init__(self, uow_factory=DjangoUnitOfWork):
        self.uow_factory = uow_factory

    def handle(self, command: SweepOverdueKeysCommand) -> List[Any]:
        now = command.now or timezone.now()
        hours = command.grace_hours
        if hours is None:
            hours = scheduling_setting('OVERDUE_GRACE_HOURS')
        grace = timedelta(hours=hours)

        marked = []
        candidates = list(KeyTransaction.objects.due_for_overdue_mark(now, grace).values_list('pk', flat=True))
        for transaction_id in candidates:
            try:
                with self.uow_factory() as uow:
                    key_transaction = lock_transaction(transaction_id)
                    if key_transaction.status != CustodyStatus.CHECKED_OUT:
                        continue
                    if not key_transaction.is_overdue(now, grace):
                        continue
                    key_transaction.mark_overdue(now)
                    uow.collect_events(key_transaction)
                marked.append(transaction_id)
            except SchedulingError as exc:
                logger.warning("Skipping key transaction %s during sweep: %s", transaction_id, exc)
            except Exception:
                logger.error("Error sweeping key transaction %s", transaction_id, exc_info=True)

        if marked:
            logger.info("Marked %d key transactions overdue", len(marked))
        return marked


check_out_key_handler = CheckOutKeyHandler()
check_in_key_handler = CheckInKeyHandler()
sweep_overdue_keys_handler = SweepOverdueKeysHandler()

COMMAND_HANDLERS = {
    CheckOutKeyCommand: check_out_key_handler.handle,
    CheckInKeyCommand: check_in_key_handler.handle,
    SweepOverdueKeysCommand: sweep_overdue_keys_handler.handle,
}
