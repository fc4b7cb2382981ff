"""One request/response exchange between a session and its AI provider."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time

from .exceptions import ProviderError, ProviderRateLimitError
from .matcher import recommend_attachments
from .models import (
    FileRef,
    RecommendedAttachment,
    Role,
    Session,
    SessionPhase,
    TranscriptEntry,
)
from .session_store import SessionStore
from .transport import ConversationTransport, WireMessage, is_rate_limit_detail

LOGGER = logging.getLogger(__name__)

WARNING_MARK = "⚠️"
RATE_LIMIT_NOTICE = (
    f"{WARNING_MARK} All API keys are currently rate-limited. "
    "Please wait about a minute and try again."
)
FAILURE_NOTICE = f"{WARNING_MARK} Failed to get a response."


@dataclass(frozen=True)
class ExchangeRequest:
    """Inputs for one exchange.

    ``attachment_refs`` is only populated for the first turn of a session so
    large folders are not re-sent with every follow-up.
    """

    session_id: str
    user_text: str
    prior_transcript: tuple[TranscriptEntry, ...]
    provider: str
    model: str
    attachment_refs: tuple[FileRef, ...] = ()


@dataclass(frozen=True)
class ExchangeResult:
    session_id: str
    reply: TranscriptEntry
    recommendations: tuple[RecommendedAttachment, ...] = ()
    applied: bool = True

    @property
    def ok(self) -> bool:
        return not self.reply.failed


def classify_failure(exc: BaseException) -> tuple[bool, str]:
    """Return ``(rate_limited, detail)`` for a failed exchange."""
    if isinstance(exc, ProviderRateLimitError):
        return True, exc.detail
    detail = exc.detail if isinstance(exc, ProviderError) else str(exc)
    return is_rate_limit_detail(detail), detail


def failure_entry(exc: BaseException) -> TranscriptEntry:
    """Build the assistant-role notice recorded for a failed exchange."""
    rate_limited, detail = classify_failure(exc)
    if rate_limited:
        text = RATE_LIMIT_NOTICE
    else:
        text = f"{FAILURE_NOTICE} {detail.strip() or 'Please try again.'}"
    return TranscriptEntry(Role.ASSISTANT, text, failed=True)


def to_wire(transcript: tuple[TranscriptEntry, ...]) -> list[WireMessage]:
    """Provider payload for a transcript; failure notices are not sent."""
    return [entry.to_wire() for entry in transcript if not entry.failed]


def _settled_phase(current: Session) -> SessionPhase:
    if current.phase is SessionPhase.AWAITING_FIRST_RESPONSE:
        return SessionPhase.IN_CONVERSATION
    return current.phase


class SessionRunner:
    """Run exchanges and fold their outcome back into the session store.

    Failures never propagate: every outcome ends up in the transcript.
    """

    def __init__(self, store: SessionStore, transport: ConversationTransport) -> None:
        self.store = store
        self.transport = transport

    async def run(self, request: ExchangeRequest) -> ExchangeResult:
        """Perform a whole exchange: optimistic update, request, fold-back."""
        return await self.complete(request, self.begin(request))

    def begin(self, request: ExchangeRequest) -> tuple[TranscriptEntry, ...]:
        """Append the user message and mark the session busy, synchronously.

        Returns the working transcript that will be sent to the provider.
        """
        user_entry = TranscriptEntry(Role.USER, request.user_text)
        self.store.apply(
            request.session_id,
            lambda current: {
                "transcript": (*current.transcript, user_entry),
                "is_busy": True,
                "exchange_count": current.exchange_count + 1,
            },
        )
        return (*request.prior_transcript, user_entry)

    async def complete(
        self, request: ExchangeRequest, working: tuple[TranscriptEntry, ...]
    ) -> ExchangeResult:
        """Issue the provider request and record its outcome."""
        session_id = request.session_id
        started = time.monotonic()
        LOGGER.info(
            "exchange.start",
            extra={
                "event": "exchange.start",
                "session_id": session_id,
                "provider": request.provider,
                "model": request.model,
                "turn": len(working),
                "files": len(request.attachment_refs),
            },
        )

        try:
            reply_text = await self.transport.send_conversation(
                to_wire(working),
                request.provider,
                request.model,
                list(request.attachment_refs) or None,
            )
        except asyncio.CancelledError:
            self.store.update(session_id, is_busy=False)
            raise
        except Exception as exc:  # noqa: BLE001 - every failure becomes transcript content.
            return self._record_failure(request, exc, started)

        return self._record_success(request, reply_text, started)

    def _record_success(
        self, request: ExchangeRequest, reply_text: str, started: float
    ) -> ExchangeResult:
        entry = TranscriptEntry(Role.ASSISTANT, reply_text)
        found: list[RecommendedAttachment] = []

        def merge(current: Session) -> dict[str, object]:
            recs = recommend_attachments(reply_text, current.attachment_candidates)
            found.extend(recs)
            changes: dict[str, object] = {
                "transcript": (*current.transcript, entry),
                "is_busy": False,
                "phase": _settled_phase(current),
            }
            # Keep the previous set unless this reply resolved something.
            if any(rec.found for rec in recs):
                changes["recommended_attachments"] = tuple(recs)
            return changes

        applied = self.store.apply(request.session_id, merge) is not None
        LOGGER.info(
            "exchange.complete",
            extra={
                "event": "exchange.complete",
                "session_id": request.session_id,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "recommendations": len(found),
                "matched": sum(1 for rec in found if rec.found),
                "applied": applied,
            },
        )
        return ExchangeResult(request.session_id, entry, tuple(found), applied)

    def _record_failure(
        self, request: ExchangeRequest, exc: Exception, started: float
    ) -> ExchangeResult:
        entry = failure_entry(exc)
        rate_limited, _detail = classify_failure(exc)
        applied = (
            self.store.apply(
                request.session_id,
                lambda current: {
                    "transcript": (*current.transcript, entry),
                    "is_busy": False,
                    "phase": _settled_phase(current),
                },
            )
            is not None
        )
        LOGGER.warning(
            "exchange.failed",
            extra={
                "event": "exchange.failed",
                "session_id": request.session_id,
                "kind": "rate_limited" if rate_limited else "other",
                "error_type": type(exc).__name__,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "applied": applied,
            },
        )
        return ExchangeResult(request.session_id, entry, (), applied)
