"""Unit tests for priority derivation and the preemption resolver."""

from __future__ import annotations

from datetime import time

from django.test import SimpleTestCase

from apps.bookings.domain.conflicts import detect_conflicts
from apps.bookings.domain.entities import BookingStatus, RequesterRole
from apps.bookings.domain.priority import derive_priority, try_preempt

from .factories import MONDAY, at, held, outage, room, schedule, span, weekly


class DerivePriorityTests(SimpleTestCase):
    def test_booking_type_sets_base_priority(self) -> None:
        self.assertEqual(derive_priority("university_activity"), 6)
        self.assertEqual(derive_priority("class"), 5)
        self.assertEqual(derive_priority("student_meeting"), 2)
        self.assertEqual(derive_priority("other"), 1)

    def test_unknown_type_falls_back_to_lowest(self) -> None:
        self.assertEqual(derive_priority("party"), 1)
        self.assertEqual(derive_priority(None), 1)

    def test_role_bonus_is_added(self) -> None:
        self.assertEqual(derive_priority("staff_meeting", RequesterRole.STAFF), 6)
        self.assertEqual(derive_priority("class", RequesterRole.ADMIN), 8)


class TryPreemptTests(SimpleTestCase):
    def test_free_slot_is_admitted_without_victims(self) -> None:
        outcome = try_preempt(1, detect_conflicts(schedule(), span(10, 11)))

        self.assertTrue(outcome.admitted)
        self.assertEqual(outcome.victims, [])

    def test_equal_priority_cannot_preempt(self) -> None:
        report = detect_conflicts(schedule(bookings=[held(1, span(10, 11), priority=3)]), span(10, 11))

        outcome = try_preempt(3, report)

        self.assertFalse(outcome.admitted)
        self.assertEqual([c.booking_id for c in outcome.blocking], [1])

    def test_higher_priority_preempts_lower(self) -> None:
        report = detect_conflicts(schedule(bookings=[held(1, span(10, 11), priority=3)]), span(10, 11))

        outcome = try_preempt(5, report)

        self.assertTrue(outcome.admitted)
        self.assertEqual(outcome.victim_ids, [1])

    def test_pending_booking_can_be_preempted(self) -> None:
        pending = held(1, span(10, 11), priority=1, status=BookingStatus.PENDING)

        outcome = try_preempt(2, detect_conflicts(schedule(bookings=[pending]), span(10, 11)))

        self.assertEqual(outcome.victim_ids, [1])

    def test_in_use_booking_is_never_preempted(self) -> None:
        occupied = held(1, span(10, 11), priority=1, status=BookingStatus.IN_USE)

        outcome = try_preempt(100, detect_conflicts(schedule(bookings=[occupied]), span(10, 11)))

        self.assertFalse(outcome.admitted)
        self.assertEqual(outcome.victims, [])

    def test_mixed_conflicts_fail_without_partial_preemption(self) -> None:
        weak = held(1, span(10, 11), priority=1)
        strong = held(2, span(10.5, 11.5), priority=9)

        outcome = try_preempt(5, detect_conflicts(schedule(bookings=[weak, strong]), span(10, 12)))

        self.assertFalse(outcome.admitted)
        self.assertEqual(outcome.victims, [])
        self.assertEqual([c.booking_id for c in outcome.blocking], [2])

    def test_timetable_conflict_is_never_preempted(self) -> None:
        lecture = weekly(MONDAY.isoweekday(), time(9), time(11))

        outcome = try_preempt(100, detect_conflicts(schedule(timetable=[lecture]), span(10, 11)))

        self.assertFalse(outcome.admitted)
        self.assertTrue(outcome.reason)

    def test_maintenance_is_never_preempted(self) -> None:
        repair = outage(at(8))
        weak = held(1, span(10, 11), priority=1)

        outcome = try_preempt(100, detect_conflicts(schedule(bookings=[weak], issues=[repair]), span(10, 11)))

        self.assertFalse(outcome.admitted)
        self.assertEqual(outcome.victims, [])

    def test_shared_resource_preempts_every_weaker_conflict(self) -> None:
        bookings = [
            held(1, span(10, 11), priority=1),
            held(2, span(10, 11), priority=2),
            held(3, span(10, 11), priority=9),
        ]

        outcome = try_preempt(5, detect_conflicts(schedule(room(capacity=3), bookings=bookings), span(10, 11)))

        self.assertTrue(outcome.admitted)
        self.assertEqual(sorted(outcome.victim_ids), [1, 2])

    def test_shared_resource_full_of_stronger_bookings_fails(self) -> None:
        bookings = [
            held(1, span(10, 11), priority=1),
            held(2, span(10, 11), priority=9),
            held(3, span(10, 11), priority=9),
        ]

        outcome = try_preempt(5, detect_conflicts(schedule(room(capacity=2), bookings=bookings), span(10, 11)))

        self.assertFalse(outcome.admitted)
        self.assertEqual(sorted(c.booking_id for c in outcome.blocking), [2, 3])
