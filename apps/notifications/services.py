"""Notification services for booking and key custody e-mails."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from django.conf import settings  # type: ignore
from django.contrib.auth import get_user_model  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.template.loader import render_to_string  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.html import strip_tags  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking
    from apps.keys.models import KeyTransaction

logger = logging.getLogger(__name__)


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    template_name: str | None,
    context: dict,
    *,
    html_message: str | None = None,
) -> bool:
    """
    Generic e-mail delivery.

    Args:
        recipient_email: Recipient address
        subject: Subject line
        template_name: Django template path (optional)
        context: Template context; ``message`` is used when there is no template
        html_message: HTML body (optional)

    Returns:
        bool: True if the message was handed to the mail backend
    """
    if not recipient_email:
        logger.warning("Skipping e-mail without recipient: %s", subject)
        return False

    try:
        if html_message:
            text_message = strip_tags(html_message)
        elif template_name:
            html_message = render_to_string(template_name, context)
            text_message = strip_tags(html_message)
        else:
            text_message = context.get("message", "")
            html_message = None

        send_mail(
            subject=subject,
            message=text_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )

        logger.info("Email sent successfully to %s: %s", recipient_email, subject)
        return True

    except Exception as e:
        logger.error("Failed to send email to %s: %s", recipient_email, e, exc_info=True)
        return False


def _display_name(user) -> str:
    if user is None:
        return ""
    return user.get_full_name() or user.get_username()


def _when(booking: "Booking") -> str:
    start = timezone.localtime(booking.start_time)
    end = timezone.localtime(booking.end_time)
    return f"{start:%d.%m.%Y %H:%M} - {end:%H:%M}" if start.date() == end.date() else f"{start:%d.%m.%Y %H:%M} - {end:%d.%m.%Y %H:%M}"


def _booking_html(greeting: str, lead: str, booking: "Booking", closing: str = "") -> str:
    return f"""
    <html>
    <body>
        <h2>Hello, {greeting}!</h2>
        <p>{lead}</p>

        <h3>Booking details:</h3>
        <ul>
            <li><strong>Reference:</strong> {booking.reference}</li>
            <li><strong>Resource:</strong> {booking.resource.name}</li>
            <li><strong>When:</strong> {_when(booking)}</li>
            <li><strong>Status:</strong> {booking.get_status_display()}</li>
        </ul>

        <p>{closing}</p>
    </body>
    </html>
    """


# Booking status -> (subject template, lead sentence)
BOOKING_MESSAGES = {
    "created": ("Booking {reference} received", "Your booking request has been received."),
    "approved": ("Booking {reference} approved", "Your booking has been approved."),
    "rejected": ("Booking {reference} rejected", "Unfortunately your booking was rejected."),
    "cancelled": ("Booking {reference} cancelled", "Your booking has been cancelled."),
    "preempted": (
        "Booking {reference} replaced",
        "Your booking gave way to a higher priority request for the same resource.",
    ),
    "expired": ("Booking {reference} expired", "Your booking ended without being used."),
    "completed": ("Booking {reference} completed", "Thank you, your booking is complete."),
    "rescheduled": ("Booking {reference} updated", "Your booking has been updated."),
    "ending_soon": (
        "Booking {reference} ends soon",
        "Your booking is about to end. Please leave the resource as you found it.",
    ),
}


def send_booking_status_email(booking: "Booking", kind: str) -> bool:
    """E-mail the booking owner about a lifecycle change."""
    if kind not in BOOKING_MESSAGES:
        logger.warning("Unknown booking notification kind %s", kind)
        return False

    subject_template, lead = BOOKING_MESSAGES[kind]
    closing = ""
    if kind == "rejected" and booking.rejection_reason:
        closing = f"Reason: {booking.rejection_reason}"
    elif kind == "cancelled" and booking.cancellation_reason:
        closing = f"Reason: {booking.cancellation_reason}"
    elif kind == "preempted":
        closing = "Please check availability for another slot or resource."

    return send_email_notification(
        recipient_email=booking.user.email,
        subject=subject_template.format(reference=booking.reference),
        template_name=None,
        context={"booking": booking},
        html_message=_booking_html(_display_name(booking.user), lead, booking, closing),
    )


def administrator_emails() -> list[str]:
    User = get_user_model()
    return list(
        User.objects.filter(is_staff=True, is_active=True)
        .exclude(email="")
        .values_list("email", flat=True)
    )


def send_pending_review_email(booking: "Booking", recipients: Iterable[str] | None = None) -> int:
    """Ask administrators to review a pending booking. Returns the number of e-mails sent."""
    recipients = administrator_emails() if recipients is None else list(recipients)
    lead = f"{_display_name(booking.user)} requested a booking that needs your review."
    sent = 0
    for email in recipients:
        sent += send_email_notification(
            recipient_email=email,
            subject=f"Booking {booking.reference} awaits approval",
            template_name=None,
            context={"booking": booking},
            html_message=_booking_html("administrator", lead, booking),
        )
    return sent


# ============================================================================
# KEY CUSTODY NOTIFICATIONS
# ============================================================================

def send_key_overdue_email(key_transaction: "KeyTransaction") -> bool:
    """Remind the borrower (copying the custodian) that a key is overdue."""
    expected = timezone.localtime(key_transaction.expected_return_at)
    key = key_transaction.key
    message = (
        f"Key {key.key_code} for {key.resource.name} was due back at "
        f"{expected:%d.%m.%Y %H:%M}. Please return it as soon as possible."
    )

    delivered = send_email_notification(
        recipient_email=key_transaction.borrower.email,
        subject=f"Key {key.key_code} is overdue",
        template_name=None,
        context={"message": message},
    )
    custodian = key_transaction.custodian
    if custodian is not None and custodian.email:
        send_email_notification(
            recipient_email=custodian.email,
            subject=f"Key {key.key_code} not returned by {_display_name(key_transaction.borrower)}",
            template_name=None,
            context={"message": message},
        )
    return delivered
