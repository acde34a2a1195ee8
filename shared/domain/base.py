"""
Base Domain Classes

This module provides the foundational building blocks shared by the
scheduling domains:
- ValueObject: Immutable objects compared by value
- DomainEvent: Events that represent something that happened
- EventRecorder: Collects domain events on an aggregate (ORM model or
  dataclass) until the unit of work publishes them
"""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List
from uuid import UUID, uuid4


@dataclass(frozen=True)
class ValueObject(ABC):
    """
    Base class for value objects

    Value objects are immutable and have no identity.
    Two value objects are equal if all their attributes are equal.
    """
    pass


@dataclass(kw_only=True)
class DomainEvent:
    """
    Base class for domain events

    Domain events represent something that happened in the domain.
    They are published by the unit of work after a successful commit.
    """
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=datetime.now)
    aggregate_id: Any = None

    def to_dict(self) -> dict:
        """Convert event to dictionary for serialization"""
        return {
            'event_id': str(self.event_id),
            'event_type': self.__class__.__name__,
            'occurred_at': self.occurred_at.isoformat(),
            'aggregate_id': str(self.aggregate_id) if self.aggregate_id is not None else None,
        }


class EventRecorder:
    """
    Mixin for aggregate roots

    Aggregates are the consistency boundaries of the domain. They collect
    domain events that are handed to the unit of work and published after
    the transaction commits. Works for Django models as well as plain
    classes, so the event list is created lazily.
    """

    def _event_buffer(self) -> List[DomainEvent]:
        buffer = self.__dict__.get('_recorded_events')
        if buffer is None:
            buffer = []
            self.__dict__['_recorded_events'] = buffer
        return buffer

    def add_event(self, event: DomainEvent):
        """Add a domain event to be published"""
        self._event_buffer().append(event)

    def clear_events(self):
        """Clear all collected events (called after collection)"""
        self._event_buffer().clear()

    @property
    def events(self) -> List[DomainEvent]:
        """Get copy of collected events"""
        return list(self._event_buffer())
