"""Integration tests for resource browsing, availability and issue reports."""

from __future__ import annotations

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.factories import make_booking, make_resource, make_user, next_week_at
from apps.keys.models import Key
from apps.resources.models import ResourceIssue


class ResourceAPITests(APITestCase):
    def setUp(self) -> None:
        self.member = make_user("member")
        self.admin = make_user("facilities", admin=True)
        self.room = make_resource("Studio 3", capacity=1, category="studio")
        self.spare = make_resource("Studio 4", capacity=1, category="studio")
        Key.objects.create(resource=self.room, key_code="ST-03")
        self.client.force_authenticate(self.member)

    def availability(self, start, end, **params):
        url = reverse("resource-availability", args=[self.room.pk])
        return self.client.get(url, {"start": start.isoformat(), "end": end.isoformat(), **params})

    def test_list_and_filter_by_category(self) -> None:
        make_resource("Lab 1", category="lab")

        response = self.client.get(reverse("resource-list"), {"category": "studio"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data["results"] if isinstance(response.data, dict) else response.data
        self.assertEqual({item["name"]: item["has_key"] for item in results}, {"Studio 3": True, "Studio 4": False})

    def test_free_slot_is_available(self) -> None:
        response = self.availability(next_week_at(10), next_week_at(11))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["available"])
        self.assertEqual(response.data["conflicts"], [])
        self.assertEqual(response.data["suggestions"], [])

    def test_busy_slot_lists_conflicts_and_suggestions(self) -> None:
        booking = make_booking(self.admin, self.room, next_week_at(10), next_week_at(11))

        response = self.availability(next_week_at(10), next_week_at(11))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["available"])
        self.assertEqual(response.data["conflicts"][0]["booking_id"], booking.pk)
        kinds = {suggestion["type"] for suggestion in response.data["suggestions"]}
        self.assertEqual(kinds, {"time_slot", "alternative_resource"})

    def test_excluding_the_edited_booking(self) -> None:
        booking = make_booking(self.member, self.room, next_week_at(10), next_week_at(11))

        response = self.availability(next_week_at(10), next_week_at(11), exclude_booking=booking.pk)

        self.assertTrue(response.data["available"])

    def test_inverted_interval_is_rejected(self) -> None:
        response = self.availability(next_week_at(11), next_week_at(10))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reported_maintenance_blocks_until_resolved(self) -> None:
        report = self.client.post(
            reverse("resource-issue-list"),
            {
                "resource": self.room.pk,
                "subject": "Heating failure",
                "issue_type": "maintenance",
                "starts_at": timezone.now().isoformat(),
            },
            format="json",
        )
        self.assertEqual(report.status_code, status.HTTP_201_CREATED, report.data)
        issue = ResourceIssue.objects.get()
        self.assertEqual(issue.reported_by, self.member)

        blocked = self.availability(next_week_at(10), next_week_at(11))
        self.assertEqual([c["type"] for c in blocked.data["conflicts"]], ["maintenance"])

        resolve_url = reverse("resource-issue-resolve", args=[issue.pk])
        self.assertEqual(self.client.post(resolve_url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        resolved = self.client.post(resolve_url)
        self.assertEqual(resolved.status_code, status.HTTP_200_OK)
        self.assertEqual(resolved.data["status"], "resolved")

        self.assertTrue(self.availability(next_week_at(10), next_week_at(11)).data["available"])
