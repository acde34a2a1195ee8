"""Integration tests for key custody endpoints."""

from __future__ import annotations

from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.factories import make_booking, make_resource, make_user
from apps.keys.models import Key, KeyTransaction


class KeyAPITests(APITestCase):
    def setUp(self) -> None:
        self.member = make_user("member")
        self.porter = make_user("porter", admin=True)
        self.room = make_resource("Darkroom", category="lab")
        self.key = Key.objects.create(resource=self.room, key_code="DARK-1")
        start = timezone.now() - timedelta(minutes=10)
        self.booking = make_booking(self.member, self.room, start, start + timedelta(hours=2))
        self.checkout_url = reverse("key-checkout", args=[self.key.pk])

    def test_members_can_list_keys_but_not_check_out(self) -> None:
        self.client.force_authenticate(self.member)

        listing = self.client.get(reverse("key-list"))
        self.assertEqual(listing.status_code, status.HTTP_200_OK)

        response = self.client.post(self.checkout_url, {"booking": self.booking.pk}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_checkout_defaults_borrower_to_booking_owner(self) -> None:
        self.client.force_authenticate(self.porter)

        response = self.client.post(self.checkout_url, {"booking": self.booking.pk}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["borrower"], self.member.pk)
        self.assertEqual(response.data["custodian"], self.porter.pk)
        self.assertEqual(response.data["status"], "checked_out")
        self.assertFalse(response.data["is_overdue"])

    def test_second_checkout_returns_409(self) -> None:
        self.client.force_authenticate(self.porter)
        first = self.client.post(self.checkout_url, {"booking": self.booking.pk}, format="json")

        response = self.client.post(self.checkout_url, {"booking": self.booking.pk}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "key_already_checked_out")
        self.assertEqual(response.data["open_transaction_id"], first.data["id"])

    def test_checkin_and_overdue_listing(self) -> None:
        self.client.force_authenticate(self.porter)
        late = KeyTransaction.objects.create(
            key=self.key,
            booking=self.booking,
            borrower=self.member,
            custodian=self.porter,
            checked_out_at=timezone.now() - timedelta(hours=3),
            expected_return_at=timezone.now() - timedelta(hours=1),
        )

        overdue = self.client.get(reverse("key-transaction-overdue"))
        self.assertEqual(overdue.status_code, status.HTTP_200_OK)
        self.assertEqual([item["id"] for item in overdue.data], [late.pk])
        self.assertEqual(overdue.data[0]["effective_status"], "overdue")

        response = self.client.post(reverse("key-transaction-checkin", args=[late.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "returned")

        self.assertEqual(self.client.get(reverse("key-transaction-overdue")).data, [])
        self.assertEqual(
            self.client.post(reverse("key-transaction-checkin", args=[late.pk])).status_code,
            status.HTTP_409_CONFLICT,
        )

    def test_checkout_for_pending_booking_returns_400(self) -> None:
        self.booking.status = "pending"
        self.booking.save(update_fields=["status"])
        self.client.force_authenticate(self.porter)

        response = self.client.post(self.checkout_url, {"booking": self.booking.pk}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")
