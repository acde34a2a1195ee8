"""Booking persistence model."""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.base import EventRecorder
from shared.domain.value_objects import TimeInterval

from .domain import events
from .domain.entities import (
    BookingSnapshot,
    BookingStatus,
    BookingType,
    OCCUPYING_STATUSES,
)
from .domain.lifecycle import can_be_cancelled, ensure_editable, ensure_transition

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


class BookingQuerySet(models.QuerySet):
    """Named predicates used by the engine instead of implicit scopes."""

    def occupying(self):
        return self.filter(status__in=[status.value for status in OCCUPYING_STATUSES])

    def overlapping(self, start: datetime, end: datetime):
        return self.filter(start_time__lt=end, end_time__gt=start)

    def occupying_bookings(self, resource, start: datetime, end: datetime):
        return self.filter(resource=resource).occupying().overlapping(start, end)

    def active_for_user(self, user, now: datetime):
        """Occupying bookings of ``user`` that have not ended yet."""
        return self.filter(user=user, end_time__gt=now).occupying()

    def due_for_expiry(self, now: datetime):
        return self.filter(status=BookingStatus.APPROVED, end_time__lte=now)

    def due_for_completion(self, now: datetime):
        return self.filter(status=BookingStatus.IN_USE, end_time__lte=now)

    def due_for_ending_reminder(self, now: datetime, lead: timedelta):
        """Approved or in-use bookings ending within ``lead`` that were not reminded yet."""
        return self.filter(
            status__in=[BookingStatus.APPROVED, BookingStatus.IN_USE],
            end_time__gt=now,
            end_time__lte=now + lead,
            ending_soon_notified_at__isnull=True,
        )


class Booking(EventRecorder, models.Model):
    """A reservation of one resource for one half-open time interval."""

    STATUS_CHOICES = [(status.value, status.label) for status in BookingStatus]
    TYPE_CHOICES = [(kind.value, kind.label) for kind in BookingType]

    reference = models.CharField(max_length=32, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    resource = models.ForeignKey(
        "resources.Resource",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=BookingStatus.PENDING.value,
    )
    priority = models.PositiveSmallIntegerField(
        default=1,
        help_text=_("Higher values win when requests collide."),
    )
    booking_type = models.CharField(
        max_length=32,
        choices=TYPE_CHOICES,
        default=BookingType.OTHER.value,
    )
    purpose = models.TextField(blank=True)
    supporting_document = models.CharField(
        max_length=255,
        blank=True,
        help_text=_("Opaque reference to an uploaded supporting document."),
    )

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+",
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    preempted_by = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="preempted_bookings",
    )
    preempted_at = models.DateTimeField(null=True, blank=True)
    started_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+",
    )
    started_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    ending_soon_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=models.F("start_time")),
                name="booking_valid_interval",
            ),
        ]
        indexes = [
            models.Index(fields=["resource", "start_time"], name="booking_resource_start_idx"),
            models.Index(fields=["status"], name="booking_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking {self.reference} for {self.resource_id}"

    @staticmethod
    def generate_reference(now: datetime | None = None) -> str:
        stamp = timezone.localtime(now or timezone.now()).strftime("%d%m%H%M")
        suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(6))
        return f"RBA-{stamp}-{suffix}"

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(timezone.localtime(self.start_time), timezone.localtime(self.end_time))

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def is_occupying(self) -> bool:
        return self.status_enum.is_occupying

    def to_snapshot(self) -> BookingSnapshot:
        return BookingSnapshot(
            id=self.pk,
            user_id=self.user_id,
            interval=self.interval,
            status=self.status_enum,
            priority=self.priority,
            reference=self.reference,
        )

    def can_be_cancelled(self, now: datetime | None = None) -> bool:
        return can_be_cancelled(self.status, self.interval, now or timezone.now())

    # --- lifecycle transitions -------------------------------------------
    #
    # Each transition validates against the lifecycle table, applies the
    # audit columns, saves and records the matching domain event. Callers
    # own the transaction and lock.

    def _apply(self, target: BookingStatus, now: datetime, reason: str = "", **changes) -> str:
        ensure_transition(self.status, target, interval=self.interval, now=now, reason=reason)
        old_status = self.status
        self.status = target.value
        for name, value in changes.items():
            setattr(self, name, value)
        self.save(update_fields=["status", "updated_at", *changes.keys()])
        return old_status

    def _event_kwargs(self) -> dict:
        return {
            "aggregate_id": self.pk,
            "booking_id": self.pk,
            "resource_id": self.resource_id,
            "user_id": self.user_id,
            "status": self.status,
        }

    def approve(self, approver, now: datetime) -> None:
        self._apply(BookingStatus.APPROVED, now, approved_by=approver, approved_at=now)
        self.add_event(events.BookingApproved(approved_by=getattr(approver, "pk", None), **self._event_kwargs()))

    def reject(self, approver, reason: str, now: datetime) -> None:
        self._apply(
            BookingStatus.REJECTED, now, reason=reason,
            rejected_by=approver, rejected_at=now, rejection_reason=reason,
        )
        self.add_event(events.BookingRejected(
            rejected_by=getattr(approver, "pk", None), reason=reason, **self._event_kwargs()
        ))

    def cancel(self, actor, now: datetime, reason: str = "") -> None:
        old_status = self._apply(
            BookingStatus.CANCELLED, now, reason=reason,
            cancelled_by=actor, cancelled_at=now, cancellation_reason=reason or "",
        )
        self.add_event(events.BookingCancelled(
            cancelled_by=getattr(actor, "pk", None), reason=reason or "", old_status=old_status,
            **self._event_kwargs(),
        ))

    def preempt(self, winner: "Booking", now: datetime) -> None:
        old_status = self._apply(BookingStatus.PREEMPTED, now, preempted_by=winner, preempted_at=now)
        self.add_event(events.BookingPreempted(
            preempted_by_id=winner.pk, old_status=old_status, **self._event_kwargs()
        ))

    def start_use(self, actor, now: datetime) -> None:
        self._apply(BookingStatus.IN_USE, now, started_by=actor, started_at=now)
        self.add_event(events.BookingStarted(started_by=getattr(actor, "pk", None), **self._event_kwargs()))

    def complete(self, actor, now: datetime) -> None:
        self._apply(BookingStatus.COMPLETED, now, completed_by=actor, completed_at=now)
        self.add_event(events.BookingCompleted(completed_by=getattr(actor, "pk", None), **self._event_kwargs()))

    def expire(self, now: datetime) -> None:
        self._apply(BookingStatus.EXPIRED, now)
        self.add_event(events.BookingExpired(**self._event_kwargs()))

    def reschedule(
        self,
        actor,
        start: datetime,
        end: datetime,
        now: datetime,
        *,
        priority: int,
        booking_type: str,
        purpose: str,
        supporting_document: str,
        preempted_ids: tuple = (),
    ) -> None:
        """Move the booking to ``[start, end)``; the caller has re-run the conflict scan."""
        ensure_editable(self.status, self.interval, now)
        old_start, old_end = self.start_time, self.end_time
        self.start_time = start
        self.end_time = end
        self.priority = priority
        self.booking_type = booking_type
        self.purpose = purpose
        self.supporting_document = supporting_document
        self.ending_soon_notified_at = None
        self.save(update_fields=[
            "start_time", "end_time", "priority", "booking_type", "purpose", "supporting_document",
            "ending_soon_notified_at", "updated_at",
        ])
        self.add_event(events.BookingRescheduled(
            old_start=old_start,
            old_end=old_end,
            changed_by=getattr(actor, "pk", None),
            preempted_ids=tuple(preempted_ids),
            **self._event_kwargs(),
        ))
