"""Integration tests for key checkout, check-in and the overdue sweep."""

from __future__ import annotations

from datetime import timedelta
from unittest import mock

from django.core import mail
from django.test import TestCase

from apps.bookings.application.engine import SchedulingEngine
from apps.bookings.tests.factories import make_booking, make_resource, make_user, next_week_at
from apps.bookings import services as booking_services
from apps.keys import tasks
from apps.keys.application import command_handlers as key_commands
from apps.keys.models import Key, KeyTransaction
from shared.domain.exceptions import (
    BookingValidationError,
    IneligibleTransitionError,
    KeyAlreadyCheckedOutError,
    NotFoundError,
)


class KeyCustodyTestCase(TestCase):
    def setUp(self) -> None:
        self.engine = SchedulingEngine()
        self.borrower = make_user("borrower")
        self.custodian = make_user("porter", admin=True)
        self.room = make_resource("Chemistry Lab", category="lab")
        self.key = Key.objects.create(resource=self.room, key_code="CHEM-01")
        self.booking = make_booking(self.borrower, self.room, next_week_at(10), next_week_at(12))
        self.now = next_week_at(9, 45)

    def check_out(self, **overrides) -> KeyTransaction:
        params = {
            "key_id": self.key.pk,
            "booking_id": self.booking.pk,
            "borrower": self.borrower,
            "custodian": self.custodian,
            "now": self.now,
        }
        params.update(overrides)
        return self.engine.check_out_key(**params)


class CheckOutTests(KeyCustodyTestCase):
    def test_checkout_opens_transaction_until_booking_end(self) -> None:
        key_transaction = self.check_out(notes="Spare set")

        self.assertEqual(key_transaction.status, "checked_out")
        self.assertEqual(key_transaction.expected_return_at, next_week_at(12))
        self.assertEqual(key_transaction.checked_out_at, self.now)
        self.assertEqual(key_transaction.custodian, self.custodian)
        self.key.refresh_from_db()
        self.assertEqual(self.key.status, Key.Status.CHECKED_OUT)

    def test_second_checkout_fails_while_open(self) -> None:
        first = self.check_out()

        with self.assertRaises(KeyAlreadyCheckedOutError) as ctx:
            self.check_out()

        self.assertEqual(ctx.exception.transaction_id, first.pk)
        self.assertEqual(KeyTransaction.objects.count(), 1)

    def test_overdue_key_still_blocks_checkout(self) -> None:
        self.check_out()
        self.engine.sweep_overdue_keys(now=next_week_at(13))

        with self.assertRaises(KeyAlreadyCheckedOutError):
            self.check_out(now=next_week_at(13))

    def test_checkout_after_return_is_allowed(self) -> None:
        first = self.check_out()
        self.engine.check_in_key(first.pk, self.custodian, now=next_week_at(11))

        second = self.check_out(now=next_week_at(11, 5))

        self.assertNotEqual(first.pk, second.pk)
        self.assertEqual(KeyTransaction.objects.open_transactions().get(), second)

    def test_booking_must_be_approved_or_in_use(self) -> None:
        for booking_status in ("pending", "cancelled", "expired"):
            with self.subTest(status=booking_status):
                self.booking.status = booking_status
                self.booking.save(update_fields=["status"])
                with self.assertRaises(BookingValidationError):
                    self.check_out()

        self.booking.status = "in_use"
        self.booking.save(update_fields=["status"])
        self.check_out()

    def test_booking_must_be_for_the_keys_resource(self) -> None:
        elsewhere = make_resource("Biology Lab", category="lab")
        other_booking = make_booking(self.borrower, elsewhere, next_week_at(10), next_week_at(12))

        with self.assertRaises(BookingValidationError):
            self.check_out(booking_id=other_booking.pk)

    def test_expected_return_must_be_in_future(self) -> None:
        with self.assertRaises(BookingValidationError):
            self.check_out(expected_return_at=self.now - timedelta(minutes=1))

    def test_unknown_or_lost_key(self) -> None:
        with self.assertRaises(BookingValidationError):
            self.check_out(key_id=424242)

        self.key.status = Key.Status.LOST
        self.key.save()
        with self.assertRaises(BookingValidationError):
            self.check_out()

    def test_booking_is_locked_before_the_key(self) -> None:
        order = []
        real_lock_booking = booking_services.lock_booking
        real_lock_key = key_commands.lock_key

        def lock_booking(booking_id):
            order.append("booking")
            return real_lock_booking(booking_id)

        def lock_key(key_id):
            order.append("key")
            return real_lock_key(key_id)

        with mock.patch.object(booking_services, "lock_booking", lock_booking), \
                mock.patch.object(key_commands, "lock_key", lock_key):
            self.check_out()

        self.assertEqual(order, ["booking", "key"])

    def test_preempted_booking_gets_no_key(self) -> None:
        self.engine.create_booking(
            self.room.pk, next_week_at(10), next_week_at(12), self.custodian, priority=10,
            now=next_week_at(9),
        )
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, "preempted")

        with self.assertRaises(BookingValidationError):
            self.check_out()
        self.assertFalse(KeyTransaction.objects.exists())

    def test_preempting_a_booking_that_holds_the_key_is_logged(self) -> None:
        key_transaction = self.check_out()

        with self.assertLogs("apps.bookings.application.command_handlers", level="WARNING") as logs:
            self.engine.create_booking(
                self.room.pk, next_week_at(10), next_week_at(12), self.custodian, priority=10, now=self.now,
            )

        self.assertTrue(any(self.booking.reference in line for line in logs.output))
        key_transaction.refresh_from_db()
        self.assertEqual(key_transaction.status, "checked_out")


class OverdueAndReturnTests(KeyCustodyTestCase):
    def test_late_key_is_marked_overdue_then_returned(self) -> None:
        key_transaction = self.check_out()

        self.assertEqual(self.engine.sweep_overdue_keys(now=next_week_at(13)), 1)
        key_transaction.refresh_from_db()
        self.assertEqual(key_transaction.status, "overdue")
        self.assertEqual(key_transaction.overdue_notified_at, next_week_at(13))

        returned = self.engine.check_in_key(key_transaction.pk, self.custodian, now=next_week_at(14))

        self.assertEqual(returned.status, "returned")
        self.assertEqual(returned.checked_in_at, next_week_at(14))
        self.assertEqual(returned.checked_in_by, self.custodian)
        self.key.refresh_from_db()
        self.assertEqual(self.key.status, Key.Status.AVAILABLE)

    def test_sweep_is_idempotent(self) -> None:
        key_transaction = self.check_out()

        self.engine.sweep_overdue_keys(now=next_week_at(13))
        self.assertEqual(self.engine.sweep_overdue_keys(now=next_week_at(15)), 0)

        key_transaction.refresh_from_db()
        self.assertEqual(key_transaction.overdue_notified_at, next_week_at(13))

    def test_sweep_respects_grace_period(self) -> None:
        self.check_out()

        self.assertEqual(self.engine.sweep_overdue_keys(now=next_week_at(13), grace_hours=2), 0)
        self.assertEqual(self.engine.sweep_overdue_keys(now=next_week_at(14, 30), grace_hours=2), 1)

    def test_failing_row_is_logged_and_skipped(self) -> None:
        first = self.check_out()
        spare_room = make_resource("Physics Lab", category="lab")
        spare_key = Key.objects.create(resource=spare_room, key_code="PHYS-01")
        spare_booking = make_booking(self.borrower, spare_room, next_week_at(10), next_week_at(12))
        second = self.check_out(key_id=spare_key.pk, booking_id=spare_booking.pk)
        original = KeyTransaction.mark_overdue

        def flaky(key_transaction, now):
            if key_transaction.pk == first.pk:
                raise RuntimeError("database hiccup")
            return original(key_transaction, now)

        with mock.patch.object(KeyTransaction, "mark_overdue", flaky):
            with self.assertLogs("apps.keys.application.command_handlers", level="ERROR"):
                marked = self.engine.sweep_overdue_keys(now=next_week_at(13))

        self.assertEqual(marked, 1)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual((first.status, second.status), ("checked_out", "overdue"))

    def test_key_returned_on_time_is_never_marked(self) -> None:
        key_transaction = self.check_out()
        self.engine.check_in_key(key_transaction.pk, self.custodian, now=next_week_at(11, 55))

        self.assertEqual(self.engine.sweep_overdue_keys(now=next_week_at(13)), 0)
        key_transaction.refresh_from_db()
        self.assertEqual(key_transaction.status, "returned")

    def test_double_check_in_is_refused(self) -> None:
        key_transaction = self.check_out()
        self.engine.check_in_key(key_transaction.pk, self.custodian, now=next_week_at(11))

        with self.assertRaises(IneligibleTransitionError):
            self.engine.check_in_key(key_transaction.pk, self.custodian, now=next_week_at(11, 5))

    def test_unknown_transaction(self) -> None:
        with self.assertRaises(NotFoundError):
            self.engine.check_in_key(987654, self.custodian)

    def test_overdue_mark_notifies_borrower_and_custodian(self) -> None:
        self.check_out()

        with self.captureOnCommitCallbacks(execute=True):
            self.engine.sweep_overdue_keys(now=next_week_at(13))

        recipients = sorted(address for message in mail.outbox for address in message.to)
        self.assertEqual(recipients, sorted([self.borrower.email, self.custodian.email]))
        self.assertTrue(all("CHEM-01" in message.subject for message in mail.outbox))

    def test_celery_task_reports_overdue_count(self) -> None:
        self.check_out()

        with mock.patch("django.utils.timezone.now", return_value=next_week_at(13)):
            result = tasks.sweep_overdue_keys.delay()

        self.assertEqual(result.get(), {"overdue": 1})
