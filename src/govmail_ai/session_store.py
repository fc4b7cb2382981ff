"""Addressable collection of independent AI sessions.

All mutations are synchronous: a caller never observes a partially merged
session because every update swaps in a new immutable record.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import fields, replace
import logging
from typing import Any

from .events import SESSION_CREATED, SESSION_REMOVED, SESSION_UPDATED, EventBus
from .exceptions import SessionRetiredError, TranscriptOrderError
from .models import Session, SessionPhase, SubjectContext

LOGGER = logging.getLogger(__name__)

_SESSION_FIELDS = frozenset(f.name for f in fields(Session))
_IMMUTABLE_FIELDS = frozenset({"session_id", "subject_context", "subject_key"})


class SessionStore:
    """Own creation, mutation and disposal of sessions keyed by id."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self.bus = bus or EventBus()
        self._sessions: dict[str, Session] = {}
        self._retired: set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(
        self,
        session_id: str,
        subject_context: SubjectContext,
        **initial: Any,
    ) -> Session:
        """Create a session, or return the existing one for ``session_id``.

        Raises:
            SessionRetiredError: the id belonged to a removed session.
        """
        existing = self._sessions.get(session_id)
        if existing is not None:
            return existing
        if session_id in self._retired:
            raise SessionRetiredError(f"Session id {session_id!r} was dismissed.")

        unknown = set(initial) - (_SESSION_FIELDS - {"session_id", "subject_context"})
        if unknown:
            raise TypeError(f"Unknown session fields: {sorted(unknown)}")
        session = Session(
            session_id=session_id, subject_context=subject_context, **initial
        )
        self._sessions[session_id] = session
        LOGGER.info(
            "session.created",
            extra={
                "event": "session.created",
                "session_id": session_id,
                "phase": session.phase.value,
            },
        )
        self.bus.publish(SESSION_CREATED, {"session_id": session_id}, source="store")
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def update(self, session_id: str, **changes: Any) -> Session | None:
        """Shallow-merge ``changes`` into the session.

        Returns the new record, or ``None`` when the session no longer exists;
        updates against a removed session are dropped silently.
        """
        return self.apply(session_id, lambda _current: changes)

    def apply(
        self,
        session_id: str,
        compute: Callable[[Session], dict[str, Any]],
    ) -> Session | None:
        """Merge changes computed from the session's *current* state."""
        current = self._sessions.get(session_id)
        if current is None:
            LOGGER.debug(
                "session.update.dropped",
                extra={"event": "session.update.dropped", "session_id": session_id},
            )
            return None

        changes = compute(current)
        if not changes:
            return current
        self._check_fields(changes)
        if "transcript" in changes:
            changes = {**changes, "transcript": tuple(changes["transcript"])}
            self._check_append_only(current, changes["transcript"])

        updated = replace(current, **changes)
        self._sessions[session_id] = updated
        self.bus.publish(
            SESSION_UPDATED,
            {"session_id": session_id, "fields": sorted(changes)},
            source="store",
        )
        return updated

    def remove(self, session_id: str) -> bool:
        """Dispose of a session; its id is never handed out again."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self._retired.add(session_id)
        LOGGER.info(
            "session.removed",
            extra={
                "event": "session.removed",
                "session_id": session_id,
                "was_busy": session.is_busy,
            },
        )
        self.bus.publish(SESSION_REMOVED, {"session_id": session_id}, source="store")
        return True

    def is_retired(self, session_id: str) -> bool:
        return session_id in self._retired

    def list(self) -> list[Session]:
        """Snapshot of every session in creation order."""
        return list(self._sessions.values())

    def list_active(self) -> list[Session]:
        """Sessions that have left picking-mode."""
        return [
            session
            for session in self._sessions.values()
            if session.phase is not SessionPhase.PICKING_MODE
        ]

    @staticmethod
    def _check_fields(changes: dict[str, Any]) -> None:
        unknown = set(changes) - _SESSION_FIELDS
        if unknown:
            raise TypeError(f"Unknown session fields: {sorted(unknown)}")
        frozen = set(changes) & _IMMUTABLE_FIELDS
        if frozen:
            raise TypeError(f"Session fields cannot change: {sorted(frozen)}")

    @staticmethod
    def _check_append_only(current: Session, transcript: tuple[Any, ...]) -> None:
        size = len(current.transcript)
        if len(transcript) < size or transcript[:size] != current.transcript:
            raise TranscriptOrderError(
                f"Transcript of {current.session_id!r} is append-only."
            )
