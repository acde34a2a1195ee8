"""Event subscribers that turn booking events into notification tasks."""

from __future__ import annotations

import logging

from .domain import events

logger = logging.getLogger(__name__)


def on_booking_created(event: events.BookingCreated) -> None:
    from .tasks import notify_booking_status, notify_pending_review

    notify_booking_status.delay(event.booking_id, "created" if event.status == "pending" else "approved")
    if event.status == "pending":
        notify_pending_review.delay(event.booking_id)


def _status_notifier(kind: str):
    def handler(event: events.BookingEvent) -> None:
        from .tasks import notify_booking_status

        notify_booking_status.delay(event.booking_id, kind)

    handler.__name__ = f"notify_{kind}"
    return handler


on_booking_approved = _status_notifier("approved")
on_booking_rejected = _status_notifier("rejected")
on_booking_cancelled = _status_notifier("cancelled")
on_booking_preempted = _status_notifier("preempted")
on_booking_expired = _status_notifier("expired")
on_booking_completed = _status_notifier("completed")
on_booking_rescheduled = _status_notifier("rescheduled")

SUBSCRIPTIONS = {
    events.BookingCreated: on_booking_created,
    events.BookingApproved: on_booking_approved,
    events.BookingRejected: on_booking_rejected,
    events.BookingCancelled: on_booking_cancelled,
    events.BookingPreempted: on_booking_preempted,
    events.BookingExpired: on_booking_expired,
    events.BookingCompleted: on_booking_completed,
    events.BookingRescheduled: on_booking_rescheduled,
}


def register(bus) -> None:
    for event_type, handler in SUBSCRIPTIONS.items():
        bus.register_event_handler(event_type, handler)
