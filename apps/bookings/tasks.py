"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from .conf import scheduling_setting
from .domain.entities import BookingStatus
from .models import Booking

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.sweep_expire_and_complete")
def sweep_expire_and_complete() -> dict[str, int]:
    """
    Expire approved bookings that were never used and complete finished ones.

    Safe to run concurrently with user actions and to re-run: rows that
    are no longer eligible are skipped.

    Returns:
        dict: {"processed": number of bookings moved to a terminal status}
    """
    from .application.engine import SchedulingEngine

    processed = SchedulingEngine().sweep_expire_and_complete()
    if processed:
        logger.info("Expiry/completion sweep processed %d bookings", processed)
    return {"processed": processed}


@shared_task(name="bookings.notify_ending_soon")
def notify_ending_soon() -> dict[str, int]:
    """
    Remind owners whose approved or in-use booking ends within the lead time.

    Each booking is claimed by stamping ``ending_soon_notified_at`` before
    the e-mail goes out, so overlapping runs remind once.

    Returns:
        dict: {"reminded": number of bookings claimed by this run}
    """
    from apps.notifications.services import send_booking_status_email

    now = timezone.now()
    lead = timedelta(minutes=scheduling_setting("ENDING_SOON_MINUTES"))

    reminded = 0
    for booking in Booking.objects.due_for_ending_reminder(now, lead).select_related("user", "resource"):
        claimed = Booking.objects.filter(pk=booking.pk, ending_soon_notified_at__isnull=True).update(
            ending_soon_notified_at=now
        )
        if not claimed:
            continue
        reminded += 1
        send_booking_status_email(booking, "ending_soon")

    if reminded:
        logger.info("Sent %d ending-soon reminders", reminded)
    return {"reminded": reminded}


# ============================================================================
# NOTIFICATION TASKS
# ============================================================================

@shared_task(name="bookings.notify_booking_status")
def notify_booking_status(booking_id: int, kind: str) -> bool:
    """Tell the booking owner about a lifecycle change."""
    from apps.notifications.services import send_booking_status_email

    try:
        booking = Booking.objects.select_related("user", "resource").get(pk=booking_id)
    except Booking.DoesNotExist:
        logger.warning("Booking %s not found for %s notification", booking_id, kind)
        return False

    return send_booking_status_email(booking, kind)


@shared_task(name="bookings.notify_pending_review")
def notify_pending_review(booking_id: int) -> int:
    """Ask administrators to review a pending booking."""
    from apps.notifications.services import send_pending_review_email

    try:
        booking = Booking.objects.select_related("user", "resource").get(pk=booking_id)
    except Booking.DoesNotExist:
        logger.warning("Booking %s not found for review notification", booking_id)
        return 0

    if booking.status != BookingStatus.PENDING:
        # Already decided or admitted as approved
        return 0
    return send_pending_review_email(booking)
