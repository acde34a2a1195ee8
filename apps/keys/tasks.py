"""Celery tasks for key custody."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .models import KeyTransaction

logger = logging.getLogger(__name__)


@shared_task(name="keys.sweep_overdue_keys")
def sweep_overdue_keys(grace_hours: float | None = None) -> dict[str, int]:
    """
    Mark keys that were not returned in time as overdue.

    Each transaction is marked (and notified) at most once.

    Returns:
        dict: {"overdue": number of transactions newly marked overdue}
    """
    from apps.bookings.application.engine import SchedulingEngine

    marked = SchedulingEngine().sweep_overdue_keys(grace_hours=grace_hours)
    if marked:
        logger.info("Overdue sweep marked %d key transactions", marked)
    return {"overdue": marked}


@shared_task(name="keys.notify_key_overdue")
def notify_key_overdue(transaction_id: int) -> bool:
    from apps.notifications.services import send_key_overdue_email

    try:
        key_transaction = KeyTransaction.objects.select_related(
            "key", "key__resource", "borrower", "custodian"
        ).get(pk=transaction_id)
    except KeyTransaction.DoesNotExist:
        logger.warning("Key transaction %s not found for overdue notification", transaction_id)
        return False

    return send_key_overdue_email(key_transaction)
