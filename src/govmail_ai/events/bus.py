"""Event bus for decoupled store-change notification.

Usage:
    bus = EventBus()

    def on_session_updated(event):
        print(f"Session changed: {event.data['session_id']}")

    bus.subscribe("session.updated", on_session_updated)
    bus.publish("session.updated", {"session_id": "msg-1"})

Handlers run synchronously inside ``publish`` so every subscriber observes a
mutation before the mutating call returns.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


Handler = Callable[[Event], None]


class EventBus:
    """Publish/subscribe hub keyed by event name."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = {}

    def subscribe(self, event_name: str, handler: Handler) -> None:
        """Subscribe ``handler`` to ``event_name``."""
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug(
            "bus.subscribed", extra={"event": "bus.subscribed", "event_name": event_name}
        )

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._subscribers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def publish(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Deliver an event to every subscriber.

        A failing handler is logged and does not prevent delivery to the rest.
        """
        event = Event(name=event_name, data=data, source=source)
        for handler in list(self._subscribers.get(event_name, ())):
            try:
                handler(event)
            except Exception as exc:  # noqa: BLE001 - subscribers must not break publishers.
                LOGGER.error(
                    "bus.handler.failed",
                    extra={
                        "event": "bus.handler.failed",
                        "event_name": event_name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
