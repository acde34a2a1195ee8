"""Key custody models."""

from __future__ import annotations

from datetime import datetime, timedelta

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.base import EventRecorder

from .domain import events
from .domain.custody import (
    OPEN_STATUSES,
    CustodyStatus,
    effective_status,
    ensure_custody_transition,
    is_overdue,
)


class Key(models.Model):
    """Physical key giving access to exactly one resource."""

    class Status(models.TextChoices):
        AVAILABLE = "available", _("Available")
        CHECKED_OUT = "checked_out", _("Checked out")
        LOST = "lost", _("Lost")

    resource = models.OneToOneField(
        "resources.Resource",
        on_delete=models.CASCADE,
        related_name="key",
    )
    key_code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key_code"]

    def __str__(self) -> str:
        return f"Key {self.key_code}"


class KeyTransactionQuerySet(models.QuerySet):
    def open_transactions(self):
        return self.filter(status__in=[status.value for status in OPEN_STATUSES])

    def overdue_at(self, now: datetime, grace: timedelta = timedelta(0)):
        """Open transactions whose expected return (plus grace) has passed."""
        return self.open_transactions().filter(expected_return_at__lt=now - grace)

    def due_for_overdue_mark(self, now: datetime, grace: timedelta = timedelta(0)):
        return self.filter(status=CustodyStatus.CHECKED_OUT, expected_return_at__lt=now - grace)


class KeyTransaction(EventRecorder, models.Model):
    """One checkout of a key for a booking, closed by its check-in."""

    STATUS_CHOICES = [(status.value, status.label) for status in CustodyStatus]

    key = models.ForeignKey(Key, on_delete=models.PROTECT, related_name="transactions")
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="key_transactions",
    )
    borrower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="borrowed_keys",
    )
    custodian = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="issued_keys",
    )
    checked_out_at = models.DateTimeField()
    expected_return_at = models.DateTimeField()
    checked_in_at = models.DateTimeField(null=True, blank=True)
    checked_in_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="received_keys",
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=CustodyStatus.CHECKED_OUT.value)
    overdue_notified_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = KeyTransactionQuerySet.as_manager()

    class Meta:
        ordering = ["-checked_out_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["key"],
                condition=Q(status__in=["checked_out", "overdue"]),
                name="key_single_open_transaction",
            ),
        ]
        indexes = [models.Index(fields=["key", "checked_out_at"], name="key_tx_key_checkout_idx")]

    def __str__(self) -> str:
        return f"{self.key_id} -> {self.borrower_id} ({self.status})"

    @property
    def is_open(self) -> bool:
        return CustodyStatus(self.status).is_open

    def is_overdue(self, now: datetime, grace: timedelta = timedelta(0)) -> bool:
        return is_overdue(self.status, self.expected_return_at, now, grace)

    def effective_status(self, now: datetime) -> CustodyStatus:
        return effective_status(self.status, self.expected_return_at, now)

    def _event_kwargs(self) -> dict:
        return {
            "aggregate_id": self.pk,
            "transaction_id": self.pk,
            "key_id": self.key_id,
            "booking_id": self.booking_id,
            "borrower_id": self.borrower_id,
        }

    def record_checkout(self) -> None:
        self.add_event(events.KeyCheckedOut(expected_return_at=self.expected_return_at, **self._event_kwargs()))

    def check_in(self, actor, now: datetime) -> None:
        was_overdue = self.status == CustodyStatus.OVERDUE or self.is_overdue(now)
        ensure_custody_transition(self.status, CustodyStatus.RETURNED)
        self.status = CustodyStatus.RETURNED.value
        self.checked_in_at = now
        self.checked_in_by = actor
        self.save(update_fields=["status", "checked_in_at", "checked_in_by", "updated_at"])
        self.add_event(events.KeyReturned(was_overdue=was_overdue, **self._event_kwargs()))

    def mark_overdue(self, now: datetime) -> None:
        ensure_custody_transition(self.status, CustodyStatus.OVERDUE)
        self.status = CustodyStatus.OVERDUE.value
        update_fields = ["status", "updated_at"]
        if self.overdue_notified_at is None:
            self.overdue_notified_at = now
            update_fields.append("overdue_notified_at")
        self.save(update_fields=update_fields)
        self.add_event(events.KeyOverdue(expected_return_at=self.expected_return_at, **self._event_kwargs()))
