"""Synchronous event bus used to broadcast session store changes."""

from .bus import Event, EventBus
from .domain import SESSION_CREATED, SESSION_EVENTS, SESSION_REMOVED, SESSION_UPDATED

__all__ = [
    "Event",
    "EventBus",
    "SESSION_CREATED",
    "SESSION_EVENTS",
    "SESSION_REMOVED",
    "SESSION_UPDATED",
]
