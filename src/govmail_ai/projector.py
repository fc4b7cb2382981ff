"""Ambient status projection over every active session.

The sessions list and the toasts both read the same projection, so they can
never disagree about a session's status.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import logging

from .events import SESSION_EVENTS, Event
from .models import Role, Session, SessionPhase, SessionStatus, SessionStatusView
from .session_store import SessionStore

LOGGER = logging.getLogger(__name__)

DEFAULT_PREVIEW_LENGTH = 50

ProjectionListener = Callable[[list[SessionStatusView], list[SessionStatusView]], None]


def session_status(session: Session) -> SessionStatus:
    if session.is_busy:
        return SessionStatus.THINKING
    last = session.last_entry
    if last is not None and last.role is Role.ASSISTANT and last.failed:
        return SessionStatus.ERROR
    if session.assistant_entries:
        return SessionStatus.DONE
    return SessionStatus.PENDING


def subject_preview(session: Session, length: int = DEFAULT_PREVIEW_LENGTH) -> str:
    subject = session.subject_context.subject.strip()
    return subject[:length] if subject else "(no subject)"


def project(
    sessions: Iterable[Session], preview_length: int = DEFAULT_PREVIEW_LENGTH
) -> list[SessionStatusView]:
    """Derive status rows for sessions that have left picking-mode."""
    return [
        SessionStatusView(
            session_id=session.session_id,
            status=session_status(session),
            subject_preview=subject_preview(session, preview_length),
            account=session.subject_context.account,
            assistant_count=len(session.assistant_entries),
        )
        for session in sessions
        if session.phase is not SessionPhase.PICKING_MODE
    ]


@dataclass(frozen=True)
class StatusTransition:
    view: SessionStatusView
    previous: SessionStatus | None


def transitions(
    previous: Iterable[SessionStatusView], current: Iterable[SessionStatusView]
) -> list[StatusTransition]:
    """Rows whose status changed (or that appeared) between two projections."""
    before = {view.session_id: view.status for view in previous}
    changed: list[StatusTransition] = []
    for view in current:
        old = before.get(view.session_id)
        if old is not view.status:
            changed.append(StatusTransition(view, old))
    return changed


class NotificationProjector:
    """Keep a projection current by recomputing on every store change."""

    def __init__(
        self, store: SessionStore, preview_length: int = DEFAULT_PREVIEW_LENGTH
    ) -> None:
        self.store = store
        self.preview_length = preview_length
        self._views: list[SessionStatusView] = project(store.list(), preview_length)
        self._listeners: list[ProjectionListener] = []
        for name in SESSION_EVENTS:
            store.bus.subscribe(name, self._on_store_event)

    def close(self) -> None:
        for name in SESSION_EVENTS:
            self.store.bus.unsubscribe(name, self._on_store_event)
        self._listeners.clear()

    def add_listener(self, listener: ProjectionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ProjectionListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def views(self) -> list[SessionStatusView]:
        return list(self._views)

    @property
    def badge_count(self) -> int:
        return len(self._views)

    def toast_items(self) -> list[SessionStatusView]:
        """Sessions to show in the floating "AI thinking" toast."""
        return [view for view in self._views if view.status is SessionStatus.THINKING]

    def status_of(self, session_id: str) -> SessionStatus | None:
        for view in self._views:
            if view.session_id == session_id:
                return view.status
        return None

    def refresh(self) -> list[SessionStatusView]:
        previous = self._views
        self._views = project(self.store.list(), self.preview_length)
        if previous != self._views:
            for listener in list(self._listeners):
                try:
                    listener(previous, self.views)
                except Exception as exc:  # noqa: BLE001 - a broken view must not stall others.
                    LOGGER.error(
                        "projector.listener.failed",
                        extra={
                            "event": "projector.listener.failed",
                            "error_type": type(exc).__name__,
                            "error": str(exc),
                        },
                    )
        return self.views

    def _on_store_event(self, _event: Event) -> None:
        self.refresh()
