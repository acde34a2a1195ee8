"""
Unit of Work Pattern

Wraps one scheduling decision (conflict scan + resulting writes) in a
database transaction and publishes the domain events it produced only
after the transaction commits. On any exception the transaction is rolled
back and the collected events are discarded, so callers never observe a
partial admission, preemption or custody change.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""

    @abstractmethod
    def collect_events(self, aggregate):
        """Collect events from aggregate root"""


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            resource = Resource.objects.select_for_update().get(pk=resource_id)
            booking = Booking(...)
            booking.save()
            uow.collect_events(booking)
        # events are published after commit

    Row locks taken with ``select_for_update`` inside the block are held
    until the transaction ends, which makes the block the exclusive
    section for that resource or key.
    """

    def __init__(self, bus=None):
        self._events: List[DomainEvent] = []
        self._transaction = None
        self._bus = bus

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def commit(self):
        """
        Schedule event publishing for after the commit

        Uses ``transaction.on_commit`` so subscribers only ever see state
        that is durable.
        """
        events = self._events.copy()
        self._events.clear()
        logger.debug("Committing unit of work with %d events", len(events))

        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning("Rolling back unit of work, discarding %d events", len(self._events))
        self._events.clear()

    def collect_events(self, aggregate):
        """Move all recorded events from ``aggregate`` into this unit of work"""
        new_events = getattr(aggregate, 'events', None)
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()
            logger.debug(
                "Collected %d events from %s (ID: %s)",
                len(new_events), aggregate.__class__.__name__, getattr(aggregate, 'pk', None),
            )

    def _publish_events(self, events: List[DomainEvent]):
        """Called after successful transaction commit."""
        bus = self._bus
        if bus is None:
            from shared.application.message_bus import message_bus as bus

        logger.info("Publishing %d domain events after commit", len(events))

        try:
            bus.publish_events(events)
        except Exception:
            # state is already committed; delivery problems are only logged
            logger.error("Error publishing events", exc_info=True)
