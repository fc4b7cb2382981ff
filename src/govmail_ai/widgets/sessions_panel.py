"""Sessions list and completion toasts driven by the status projection."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
from typing import Any

from rich.text import Text
from textual.widgets import Static

from ..focus import FocusController
from ..models import SessionStatus, SessionStatusView
from ..projector import NotificationProjector, transitions

LOGGER = logging.getLogger(__name__)

STATUS_ICONS: dict[SessionStatus, str] = {
    SessionStatus.PENDING: "○",
    SessionStatus.THINKING: "◌",
    SessionStatus.DONE: "●",
    SessionStatus.ERROR: "⚠",
}
STATUS_STYLES: dict[SessionStatus, str] = {
    SessionStatus.PENDING: "dim",
    SessionStatus.THINKING: "yellow",
    SessionStatus.DONE: "green",
    SessionStatus.ERROR: "bold red",
}
EMPTY_TEXT = "No AI sessions yet."


def render_rows(views: Iterable[SessionStatusView]) -> Text:
    """Render one line per session: status icon, subject preview, account."""
    text = Text()
    rows = list(views)
    if not rows:
        text.append(EMPTY_TEXT, style="dim")
        return text
    for index, view in enumerate(rows):
        if index:
            text.append("\n")
        text.append(f"{STATUS_ICONS[view.status]} ", style=STATUS_STYLES[view.status])
        text.append(view.subject_preview, style="bold")
        if view.account:
            text.append(f"  {view.account}", style="dim")
        if view.assistant_count:
            text.append(f"  ({view.assistant_count})", style="dim")
    return text


class SessionsPanel(Static):
    """List every active session with its current status."""

    DEFAULT_CSS = """
    SessionsPanel {
        height: auto;
        padding: 0 1;
        border: round $primary;
    }
    """

    def __init__(
        self, projector: NotificationProjector | None = None, **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        self._projector = projector
        self._views: list[SessionStatusView] = (
            projector.views if projector is not None else []
        )

    def on_mount(self) -> None:
        if self._projector is not None:
            self._projector.add_listener(self._on_projection)
        self.update(render_rows(self._views))

    def on_unmount(self) -> None:
        if self._projector is not None:
            self._projector.remove_listener(self._on_projection)

    @property
    def views(self) -> list[SessionStatusView]:
        return list(self._views)

    @property
    def badge_text(self) -> str:
        return f"AI ({len(self._views)})" if self._views else "AI"

    def show(self, views: Iterable[SessionStatusView]) -> None:
        """Replace the rendered rows."""
        self._views = list(views)
        if self.is_mounted:
            self.update(render_rows(self._views))

    def _on_projection(
        self, _previous: list[SessionStatusView], current: list[SessionStatusView]
    ) -> None:
        self.show(current)


class ToastRelay:
    """Raise a toast when a session's exchange settles.

    Sessions focused in the main pane are skipped; the user is already
    looking at the reply.
    """

    def __init__(
        self,
        projector: NotificationProjector,
        notify: Callable[..., Any],
        focus: FocusController | None = None,
    ) -> None:
        self.projector = projector
        self.notify = notify
        self.focus = focus
        projector.add_listener(self._on_projection)

    def close(self) -> None:
        self.projector.remove_listener(self._on_projection)

    def _on_projection(
        self, previous: list[SessionStatusView], current: list[SessionStatusView]
    ) -> None:
        for change in transitions(previous, current):
            if change.previous is not SessionStatus.THINKING:
                continue
            view = change.view
            if self.focus is not None and self.focus.is_focused(view.session_id):
                continue
            if view.status is SessionStatus.ERROR:
                self.notify(
                    view.subject_preview, title="AI request failed", severity="error"
                )
            elif view.status is SessionStatus.DONE:
                self.notify(view.subject_preview, title="AI replied")
            LOGGER.debug(
                "toast.raised",
                extra={
                    "event": "toast.raised",
                    "session_id": view.session_id,
                    "status": view.status.value,
                },
            )
