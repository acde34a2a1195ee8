"""Event subscribers for key custody events."""

from __future__ import annotations

from .domain import events


def on_key_overdue(event: events.KeyOverdue) -> None:
    from .tasks import notify_key_overdue

    notify_key_overdue.delay(event.transaction_id)


def register(bus) -> None:
    bus.register_event_handler(events.KeyOverdue, on_key_overdue)
