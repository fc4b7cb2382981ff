"""Pointer to the session currently shown in the main pane."""

from __future__ import annotations

from collections.abc import Callable
import logging

LOGGER = logging.getLogger(__name__)

FocusListener = Callable[[str | None], None]


class FocusController:
    """Track which single session, if any, is focused.

    Focus is presentation state only: changing or clearing it never touches
    the session store or any exchange in flight.
    """

    def __init__(self) -> None:
        self._focused: str | None = None
        self._listeners: list[FocusListener] = []

    @property
    def focused_session_id(self) -> str | None:
        return self._focused

    def is_focused(self, session_id: str) -> bool:
        return self._focused == session_id

    def focus(self, session_id: str | None) -> None:
        if session_id == self._focused:
            return
        self._focused = session_id
        LOGGER.debug(
            "focus.changed", extra={"event": "focus.changed", "session_id": session_id}
        )
        for listener in list(self._listeners):
            listener(session_id)

    def clear(self) -> None:
        self.focus(None)

    def release(self, session_id: str) -> None:
        """Clear focus only if it points at ``session_id``."""
        if self._focused == session_id:
            self.clear()

    def add_listener(self, listener: FocusListener) -> None:
        self._listeners.append(listener)
