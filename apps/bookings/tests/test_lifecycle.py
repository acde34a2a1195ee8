"""Unit tests for the booking status machine."""

from __future__ import annotations

from django.test import SimpleTestCase

from apps.bookings.domain.entities import BookingStatus, TERMINAL_STATUSES
from apps.bookings.domain.lifecycle import allowed_targets, can_be_cancelled, ensure_transition
from shared.domain.exceptions import IneligibleTransitionError

from .factories import at, span

SLOT = span(10, 11)


class EnsureTransitionTests(SimpleTestCase):
    def test_approval_of_pending(self) -> None:
        ensure_transition("pending", "approved", interval=SLOT, now=at(8))

    def test_rejection_needs_reason(self) -> None:
        with self.assertRaises(IneligibleTransitionError):
            ensure_transition("pending", "rejected", interval=SLOT, now=at(8), reason="   ")

        ensure_transition("pending", "rejected", interval=SLOT, now=at(8), reason="Room closed")

    def test_cancellation_only_before_start(self) -> None:
        ensure_transition("approved", "cancelled", interval=SLOT, now=at(9, 59))

        with self.assertRaises(IneligibleTransitionError) as ctx:
            ensure_transition("approved", "cancelled", interval=SLOT, now=at(10))

        self.assertEqual(ctx.exception.current, "approved")
        self.assertEqual(ctx.exception.target, "cancelled")

    def test_occupancy_starts_within_interval_only(self) -> None:
        ensure_transition("approved", "in_use", interval=SLOT, now=at(10, 15))

        for moment in (at(9, 59), at(11)):
            with self.subTest(moment=moment):
                with self.assertRaises(IneligibleTransitionError):
                    ensure_transition("approved", "in_use", interval=SLOT, now=moment)

    def test_completion_and_expiry_need_ended_interval(self) -> None:
        with self.assertRaises(IneligibleTransitionError):
            ensure_transition("in_use", "completed", interval=SLOT, now=at(10, 30))
        with self.assertRaises(IneligibleTransitionError):
            ensure_transition("approved", "expired", interval=SLOT, now=at(10, 30))

        ensure_transition("in_use", "completed", interval=SLOT, now=at(11))
        ensure_transition("approved", "expired", interval=SLOT, now=at(11))

    def test_pending_cannot_start_or_expire(self) -> None:
        for target in ("in_use", "expired", "completed"):
            with self.subTest(target=target):
                with self.assertRaises(IneligibleTransitionError):
                    ensure_transition("pending", target, interval=SLOT, now=at(10, 30))

    def test_in_use_cannot_be_preempted_or_cancelled(self) -> None:
        for target in ("preempted", "cancelled"):
            with self.subTest(target=target):
                with self.assertRaises(IneligibleTransitionError):
                    ensure_transition("in_use", target, interval=SLOT, now=at(8))

    def test_terminal_statuses_never_move(self) -> None:
        for current in TERMINAL_STATUSES:
            for target in BookingStatus:
                with self.subTest(current=current, target=target):
                    with self.assertRaises(IneligibleTransitionError):
                        ensure_transition(current, target, interval=SLOT, now=at(8), reason="x")

    def test_terminal_statuses_have_no_targets(self) -> None:
        for status in TERMINAL_STATUSES:
            self.assertEqual(allowed_targets(status), set())
        self.assertEqual(
            allowed_targets(BookingStatus.APPROVED),
            {
                BookingStatus.CANCELLED,
                BookingStatus.PREEMPTED,
                BookingStatus.IN_USE,
                BookingStatus.EXPIRED,
            },
        )


class CanBeCancelledTests(SimpleTestCase):
    def test_future_pending_or_approved(self) -> None:
        self.assertTrue(can_be_cancelled("pending", SLOT, at(9)))
        self.assertTrue(can_be_cancelled("approved", SLOT, at(9)))

    def test_started_or_terminal(self) -> None:
        self.assertFalse(can_be_cancelled("approved", SLOT, at(10, 30)))
        self.assertFalse(can_be_cancelled("preempted", SLOT, at(9)))
        self.assertFalse(can_be_cancelled("expired", SLOT, at(9)))
        self.assertFalse(can_be_cancelled("in_use", SLOT, at(10, 30)))
