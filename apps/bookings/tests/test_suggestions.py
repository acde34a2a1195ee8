"""Unit tests for slot and alternative-resource suggestions."""

from __future__ import annotations

from datetime import timedelta

from django.test import SimpleTestCase

from apps.bookings.domain.suggestions import (
    SuggestionKind,
    candidate_slots,
    rank_alternatives,
    suggest_slots,
)

from .factories import at, held, outage, room, schedule, span

HALF_HOUR = timedelta(minutes=30)


class CandidateSlotTests(SimpleTestCase):
    def test_nearest_first_earlier_before_later(self) -> None:
        slots = list(candidate_slots(span(10, 11), window=timedelta(hours=1), step=HALF_HOUR))

        self.assertEqual(
            [slot.start for slot in slots],
            [at(9, 30), at(10, 30), at(9), at(11)],
        )

    def test_slots_in_the_past_are_skipped(self) -> None:
        slots = list(candidate_slots(span(10, 11), window=timedelta(hours=1), step=HALF_HOUR, now=at(9, 45)))

        self.assertEqual([slot.start for slot in slots], [at(10, 30), at(11)])

    def test_step_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            list(candidate_slots(span(10, 11), window=timedelta(hours=1), step=timedelta(0)))


class SuggestSlotsTests(SimpleTestCase):
    def test_free_slots_on_same_resource(self) -> None:
        busy = schedule(bookings=[held(1, span(10, 11))])

        found = suggest_slots(busy, span(10, 11), window=timedelta(hours=2), step=HALF_HOUR, limit=3)

        self.assertEqual([s.interval.start for s in found], [at(9), at(11), at(8, 30)])
        self.assertTrue(all(s.kind == SuggestionKind.TIME_SLOT for s in found))
        self.assertEqual(found[0].score, -60.0)
        self.assertIn("09:00-10:00", found[0].reason)

    def test_requesters_own_bookings_are_avoided(self) -> None:
        busy = schedule(bookings=[held(1, span(10, 11))])

        found = suggest_slots(
            busy,
            span(10, 11),
            window=timedelta(hours=2),
            step=HALF_HOUR,
            limit=3,
            avoid=[span(8.5, 10)],
        )

        self.assertEqual([s.interval.start for s in found], [at(11), at(11, 30), at(12)])

    def test_nothing_free_returns_empty(self) -> None:
        repair = outage(at(0))

        found = suggest_slots(
            schedule(issues=[repair]), span(10, 11), window=timedelta(hours=2), step=HALF_HOUR, limit=3
        )

        self.assertEqual(found, [])

    def test_zero_limit(self) -> None:
        self.assertEqual(suggest_slots(schedule(), span(10, 11), window=timedelta(hours=1), step=HALF_HOUR, limit=0), [])


class RankAlternativesTests(SimpleTestCase):
    def test_ranked_by_usage_then_capacity_proximity(self) -> None:
        near = schedule(room(capacity=12, id=2, name="Room B"))
        far = schedule(room(capacity=40, id=3, name="Room C"))
        favourite = schedule(room(capacity=60, id=4, name="Room D"))

        found = rank_alternatives(
            [(near, 0), (far, 0), (favourite, 3)],
            span(10, 11),
            reference_capacity=10,
            limit=5,
        )

        self.assertEqual([s.resource_id for s in found], [4, 2, 3])
        self.assertTrue(all(s.kind == SuggestionKind.ALTERNATIVE_RESOURCE for s in found))
        self.assertIn("used 3 time(s)", found[0].reason)

    def test_busy_unavailable_small_and_maintained_resources_are_dropped(self) -> None:
        busy = schedule(room(id=2, name="Busy"), bookings=[held(9, span(10, 11))])
        closed = schedule(room(id=3, name="Closed", available=False))
        small = schedule(room(capacity=1, id=4, name="Small"))
        repaired = schedule(room(capacity=5, id=5, name="Repaired"), issues=[outage(at(12), at(13))])
        fine = schedule(room(capacity=5, id=6, name="Fine"))

        found = rank_alternatives(
            [(busy, 0), (closed, 0), (small, 0), (repaired, 0), (fine, 0)],
            span(10, 11),
            reference_capacity=5,
            limit=5,
            min_capacity=2,
        )

        self.assertEqual([s.resource_id for s in found], [6])

    def test_requested_resource_is_excluded_and_limit_applies(self) -> None:
        candidates = [(schedule(room(id=i, name=f"Room {i}")), 0) for i in range(1, 6)]

        found = rank_alternatives(candidates, span(10, 11), reference_capacity=1, limit=2, exclude_resource_id=1)

        self.assertEqual([s.resource_id for s in found], [2, 3])
