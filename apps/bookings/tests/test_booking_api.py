"""Integration tests for booking API endpoints."""

from __future__ import annotations

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking

from .factories import make_booking, make_resource, make_user, next_week_at


class BookingAPITests(APITestCase):
    """Covers creation, conflicts, approval and cancellation of bookings."""

    def setUp(self) -> None:
        self.member = make_user("member")
        self.other = make_user("other")
        self.admin = make_user("admin", admin=True)
        self.room = make_resource("Board Room", capacity=1, category="room")
        self.client.force_authenticate(self.member)
        self.list_url = reverse("booking-list")

    def _payload(self, start_hour: int, end_hour: int, **extra) -> dict:
        payload = {
            "resource": self.room.pk,
            "start_time": next_week_at(start_hour).isoformat(),
            "end_time": next_week_at(end_hour).isoformat(),
            "booking_type": "student_meeting",
            "purpose": "Project sync",
        }
        payload.update(extra)
        return payload

    def test_member_can_create_pending_booking(self) -> None:
        response = self.client.post(self.list_url, self._payload(10, 11), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["priority"], 2)
        self.assertTrue(response.data["can_be_cancelled"])
        booking = Booking.objects.get()
        self.assertEqual(booking.user, self.member)
        self.assertEqual(booking.purpose, "Project sync")

    def test_member_priority_is_ignored(self) -> None:
        response = self.client.post(self.list_url, self._payload(10, 11, priority=50), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["priority"], 2)

    def test_admin_priority_is_honoured(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(self.list_url, self._payload(10, 11, priority=50), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["priority"], 50)
        self.assertEqual(response.data["status"], "approved")

    def test_conflict_returns_409_with_conflicts_and_suggestions(self) -> None:
        existing = make_booking(self.other, self.room, next_week_at(10), next_week_at(11), priority=3)

        response = self.client.post(self.list_url, self._payload(10, 11), format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(response.data["code"], "conflict")
        self.assertEqual(response.data["conflicts"][0]["booking_id"], existing.pk)
        self.assertTrue(any(s["type"] == "time_slot" for s in response.data["suggestions"]))

    def test_invalid_interval_returns_400(self) -> None:
        response = self.client.post(self.list_url, self._payload(11, 10), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_too_short_booking_returns_400(self) -> None:
        payload = self._payload(10, 11, end_time=next_week_at(10, 10).isoformat())

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "validation_error")

    def test_members_only_see_their_own_bookings(self) -> None:
        mine = make_booking(self.member, self.room, next_week_at(8), next_week_at(9))
        make_booking(self.other, self.room, next_week_at(10), next_week_at(11))

        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data["results"] if isinstance(response.data, dict) else response.data
        self.assertEqual([item["id"] for item in results], [mine.pk])

    def test_only_admins_approve(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11), status="pending")
        url = reverse("booking-approve", args=[booking.pk])

        forbidden = self.client.post(url)
        self.assertEqual(forbidden.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "approved")
        self.assertEqual(response.data["approved_by"], self.admin.pk)

    def test_approving_twice_returns_409(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11), status="approved")
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("booking-approve", args=[booking.pk]))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "ineligible_transition")

    def test_reject_requires_reason(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11), status="pending")
        self.client.force_authenticate(self.admin)
        url = reverse("booking-reject", args=[booking.pk])

        self.assertEqual(self.client.post(url, {}, format="json").status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {"reason": "Double booked"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["rejection_reason"], "Double booked")

    def test_owner_can_cancel(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11))

        response = self.client.post(reverse("booking-cancel", args=[booking.pk]), {"reason": "Sick"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "cancelled")
        self.assertFalse(response.data["can_be_cancelled"])

    def test_cannot_cancel_someone_elses_booking(self) -> None:
        booking = make_booking(self.other, self.room, next_week_at(10), next_week_at(11))

        response = self.client.post(reverse("booking-cancel", args=[booking.pk]), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        booking.refresh_from_db()
        self.assertEqual(booking.status, "approved")

    def test_start_before_interval_returns_409(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11))

        response = self.client.post(reverse("booking-start", args=[booking.pk]))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_priority_above_storage_range_returns_400(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(self.list_url, self._payload(10, 11, priority=40000), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("priority", response.data)
        self.assertFalse(Booking.objects.exists())

    def test_admin_books_on_behalf_of_member(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(self.list_url, self._payload(10, 11, user=self.member.pk), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["user_id"], self.member.pk)
        self.assertEqual(response.data["status"], "approved")

    def test_member_cannot_book_on_behalf_of_others(self) -> None:
        response = self.client.post(self.list_url, self._payload(10, 11, user=self.other.pk), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Booking.objects.exists())

    def test_owner_can_reschedule(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11), status="pending")
        url = reverse("booking-detail", args=[booking.pk])

        response = self.client.patch(
            url,
            {"start_time": next_week_at(13).isoformat(), "end_time": next_week_at(14).isoformat()},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        booking.refresh_from_db()
        self.assertEqual((booking.start_time, booking.end_time), (next_week_at(13), next_week_at(14)))
        self.assertEqual(booking.status, "pending")

    def test_reschedule_onto_taken_slot_returns_409(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11), status="pending")
        make_booking(self.other, self.room, next_week_at(13), next_week_at(14), priority=5)
        url = reverse("booking-detail", args=[booking.pk])

        response = self.client.patch(
            url,
            {"start_time": next_week_at(13).isoformat(), "end_time": next_week_at(14).isoformat()},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        booking.refresh_from_db()
        self.assertEqual(booking.start_time, next_week_at(10))

    def test_cannot_reschedule_someone_elses_booking(self) -> None:
        booking = make_booking(self.other, self.room, next_week_at(10), next_week_at(11))

        response = self.client.patch(
            reverse("booking-detail", args=[booking.pk]), {"purpose": "Mine now"}, format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_anonymous_requests_are_refused(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.get(self.list_url)

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
