"""
Message Bus

Routes scheduling commands to their handler and domain events to their
subscribers. Commands: one handler per command type. Events: any number of
subscribers per event type; a failing subscriber never affects the others
or the command that produced the event.
"""

from typing import Any, Callable, Dict, Iterable, List, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class MessageBus:
    """Message bus for commands and events"""

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._command_handlers: Dict[Type, Callable] = {}

    def register_event_handler(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None]
    ):
        """Subscribe ``handler`` to ``event_type``; duplicates are ignored."""
        handlers = self._event_handlers.setdefault(event_type, [])
        if handler in handlers:
            return
        handlers.append(handler)
        logger.debug("Registered event handler %s for %s", handler.__name__, event_type.__name__)

    def register_command_handler(
        self,
        command_type: Type,
        handler: Callable[[Any], Any]
    ):
        """
        Register a command handler

        Only one handler can be registered per command type. Registering the
        same handler twice is a no-op so app re-initialisation is safe.
        """
        existing = self._command_handlers.get(command_type)
        if existing is not None and existing != handler:
            raise ValueError(
                f"Handler for {command_type.__name__} is already registered. "
                "Commands can have only one handler."
            )
        self._command_handlers[command_type] = handler
        logger.debug("Registered command handler for %s", command_type.__name__)

    def handle_command(self, command: Any) -> Any:
        """
        Dispatch a command and return its handler's result

        Raises LookupError if no handler is registered. Errors raised by the
        handler propagate to the caller unchanged.
        """
        command_type = type(command)
        handler = self._command_handlers.get(command_type)

        if handler is None:
            raise LookupError(f"No handler registered for command {command_type.__name__}")

        logger.info("Handling command %s", command_type.__name__)
        try:
            return handler(command)
        except Exception as exc:
            logger.warning("Command %s failed: %s", command_type.__name__, exc)
            raise

    def publish_events(self, events: Iterable[DomainEvent]):
        """
        Publish domain events to every subscriber

        Errors in handlers are logged but don't stop other handlers.
        """
        for event in events:
            event_type = type(event)
            handlers = self._event_handlers.get(event_type, [])

            if not handlers:
                logger.debug("No handlers registered for event %s", event_type.__name__)
                continue

            logger.info("Publishing event %s (ID: %s)", event_type.__name__, event.event_id)

            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    logger.error(
                        "Error in event handler %s for event %s",
                        getattr(handler, '__name__', repr(handler)),
                        event_type.__name__,
                        exc_info=True,
                    )


# Global message bus instance
message_bus = MessageBus()
