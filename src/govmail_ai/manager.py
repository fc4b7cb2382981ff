"""Session manager: the surface the dashboard UI talks to.

Exchanges run in tasks owned by the manager, not by whichever panel is on
screen, so a reply still lands in its session after the user has moved on
to another message, closed the panel, or reopened it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import logging
from typing import Any, Protocol

from .config import AIConfig, Config
from .events import EventBus
from .exceptions import (
    ProviderError,
    SessionBusyError,
    SessionNotFoundError,
    SessionStateError,
)
from .focus import FocusController
from .matcher import extract_html_block
from .models import (
    FileContent,
    FileRef,
    ModelOption,
    ProviderSelection,
    Role,
    Session,
    SessionPhase,
    SessionStatusView,
    SubjectContext,
    TranscriptEntry,
)
from .projector import NotificationProjector
from .prompts import DRAFT_FORMAT, PRESETS, build_context_message
from .runner import ExchangeRequest, ExchangeResult, SessionRunner
from .session_store import SessionStore
from .task_manager import TaskManager
from .transport import BackendClient, ConversationTransport, OllamaTransport, ProviderRouter

LOGGER = logging.getLogger(__name__)

EMPTY_FOLDER_NOTICE = (
    "No files found in the Google Drive folder. The folder may be empty or not "
    "shared with the service account. Please upload files manually."
)
FOLDER_FAILED_NOTICE = (
    "Failed to load files from Google Drive. Please upload files manually."
)


class FileCatalog(Protocol):
    """Drive folder listing.

    Catalogs may also offer ``list_models`` and ``list_candidate_contents``;
    the manager uses them when present.
    """

    async def list_candidate_files(self, folder_ref: str) -> list[FileRef]: ...


class AISessionManager:
    """Create, drive and dispose of concurrent AI sessions."""

    def __init__(
        self,
        transport: ConversationTransport,
        catalog: FileCatalog | None = None,
        ai_config: AIConfig | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self.ai_config = ai_config or AIConfig()
        self.transport = transport
        self.catalog = catalog
        self.store = store or SessionStore(EventBus())
        self.runner = SessionRunner(self.store, transport)
        self.projector = NotificationProjector(
            self.store, self.ai_config.subject_preview_length
        )
        self.focus = FocusController()
        self.tasks = TaskManager()
        self._by_subject: dict[str, str] = {}

    @classmethod
    def from_config(cls, config: Config) -> AISessionManager:
        """Wire the backend client (and a local Ollama route when enabled)."""
        backend = BackendClient(
            base_url=config.backend.base_url,
            timeout=config.backend.timeout,
            retries=config.backend.retries,
            retry_backoff_seconds=config.backend.retry_backoff_seconds,
        )
        router = ProviderRouter(default=backend)
        if config.ollama.enabled:
            router.register(
                "ollama",
                OllamaTransport(host=config.ollama.host, timeout=config.ollama.timeout),
            )
        return cls(router, catalog=backend, ai_config=config.ai)

    # -- lookup -----------------------------------------------------------

    def session(self, session_id: str) -> Session | None:
        return self.store.get(session_id)

    def session_for(self, subject_key: str) -> Session | None:
        """Return the live session opened on a message or draft, if any."""
        session_id = self._by_subject.get(subject_key)
        return self.store.get(session_id) if session_id is not None else None

    def _require(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"No session {session_id!r}.")
        return session

    def _require_picking(self, session_id: str) -> Session:
        session = self._require(session_id)
        if session.phase is not SessionPhase.PICKING_MODE:
            raise SessionStateError(f"Session {session_id!r} has already started.")
        return session

    def _next_session_id(self, subject_key: str) -> str:
        candidate = subject_key
        generation = 1
        while candidate in self.store or self.store.is_retired(candidate):
            generation += 1
            candidate = f"{subject_key}~{generation}"
        return candidate

    def _preset_prompt(self, preset_id: str) -> str:
        override = self.ai_config.prompt_overrides.get(preset_id)
        return override or PRESETS[preset_id].system_prompt

    # -- lifecycle --------------------------------------------------------

    def create_session(
        self, subject_key: str, subject_context: SubjectContext
    ) -> Session:
        """Open "Ask AI" on a message or draft; repeated calls return the same session."""
        existing = self.session_for(subject_key)
        if existing is not None:
            return existing

        session_id = self._next_session_id(subject_key)
        session = self.store.create(
            session_id,
            subject_context,
            subject_key=subject_key,
            provider_selection=ProviderSelection(
                self.ai_config.default_provider, self.ai_config.default_model
            ),
        )
        self._by_subject[subject_key] = session_id
        return session

    def focus_session(self, session_id: str | None) -> None:
        if session_id is not None:
            self._require(session_id)
        self.focus.focus(session_id)

    @property
    def focused_session(self) -> Session | None:
        focused = self.focus.focused_session_id
        return self.store.get(focused) if focused is not None else None

    def dismiss_session(self, session_id: str) -> bool:
        """Remove a session; an exchange still in flight finishes into the void."""
        session = self.store.get(session_id)
        if session is None:
            return False
        self.store.remove(session_id)
        self.focus.release(session_id)
        if self._by_subject.get(session.subject_key) == session_id:
            del self._by_subject[session.subject_key]
        return True

    def list_active_sessions(self) -> list[SessionStatusView]:
        return self.projector.views

    # -- picking-mode configuration -----------------------------------------

    def select_preset(self, session_id: str, preset_id: str) -> Session:
        """Choose what the AI should do; seeds the editable system prompt.

        The folder listing starts loading in the background here so it is
        usually ready by the time the session is started.
        """
        self._require_picking(session_id)
        if preset_id not in PRESETS:
            raise ValueError(f"Unknown prompt preset {preset_id!r}.")
        self.store.update(
            session_id, preset=preset_id, system_prompt=self._preset_prompt(preset_id)
        )
        session = self._require(session_id)
        folder_ref = self._folder_ref(session)
        if folder_ref is not None and self.catalog is not None and not session.candidates_loaded:
            self._candidate_load(self.catalog, session_id, folder_ref)
        return session

    def set_system_prompt(self, session_id: str, prompt: str) -> Session:
        self._require_picking(session_id)
        self.store.update(session_id, system_prompt=prompt)
        return self._require(session_id)

    def attach_upload(self, session_id: str, upload: FileContent) -> Session:
        """Add a hand-picked file; its text joins the first message for every provider."""
        session = self._require_picking(session_id)
        self.store.update(session_id, uploaded_files=(*session.uploaded_files, upload))
        return self._require(session_id)

    def remove_upload(self, session_id: str, index: int) -> Session:
        session = self._require_picking(session_id)
        uploads = list(session.uploaded_files)
        if not 0 <= index < len(uploads):
            raise IndexError(f"No uploaded file at position {index}.")
        del uploads[index]
        self.store.update(session_id, uploaded_files=tuple(uploads))
        return self._require(session_id)

    def select_provider(self, session_id: str, provider: str, model: str) -> Session:
        """Change provider/model; only allowed before the first exchange."""
        session = self._require(session_id)
        if session.is_busy:
            raise SessionBusyError(f"Session {session_id!r} is busy.")
        if session.has_started:
            raise SessionStateError(
                f"Session {session_id!r} already started with "
                f"{session.provider_selection.provider}:{session.provider_selection.model}."
            )
        self.store.update(
            session_id,
            provider_selection=ProviderSelection(provider.strip(), model.strip()),
        )
        return self._require(session_id)

    async def available_models(self) -> list[ModelOption]:
        """Models offered by the backend, or the configured default."""
        default = [
            ModelOption(
                self.ai_config.default_provider,
                self.ai_config.default_model,
                self.ai_config.default_model,
            )
        ]
        list_models = getattr(self.catalog, "list_models", None)
        if list_models is None:
            return default
        try:
            models = await list_models()
        except ProviderError as exc:
            LOGGER.warning(
                "models.list.failed",
                extra={"event": "models.list.failed", "error": str(exc)},
            )
            return default
        return models or default

    # -- candidate files ----------------------------------------------------

    def takes_file_refs(self, provider: str) -> bool:
        """Return True when ``provider`` receives Drive files natively rather than as text."""
        return provider.strip().lower() in self.ai_config.native_file_providers

    @staticmethod
    def _folder_ref(session: Session) -> str | None:
        opportunity = session.subject_context.opportunity
        return opportunity.folder_ref if opportunity is not None else None

    def _candidate_load(
        self, catalog: FileCatalog, session_id: str, folder_ref: str
    ) -> asyncio.Task[tuple[FileRef, ...]]:
        name = f"candidates:{session_id}"
        task = self.tasks.get(name)
        if task is None or not self.tasks.is_running(name):
            task = self.tasks.spawn(
                self._fetch_candidates(catalog, session_id, folder_ref), name=name
            )
        return task

    async def load_candidate_files(self, session_id: str) -> tuple[FileRef, ...]:
        """Fetch the session's candidate listing once and cache it on the session."""
        session = self._require(session_id)
        if session.candidates_loaded:
            return session.attachment_candidates

        folder_ref = self._folder_ref(session)
        if folder_ref is None or self.catalog is None:
            return ()
        return await self._candidate_load(self.catalog, session_id, folder_ref)

    async def _fetch_candidates(
        self, catalog: FileCatalog, session_id: str, folder_ref: str
    ) -> tuple[FileRef, ...]:
        try:
            files = tuple(await catalog.list_candidate_files(folder_ref))
        except ProviderError as exc:
            LOGGER.warning(
                "candidates.load.failed",
                extra={
                    "event": "candidates.load.failed",
                    "session_id": session_id,
                    "error": str(exc),
                },
            )
            self.store.update(session_id, candidate_error=FOLDER_FAILED_NOTICE)
            return ()

        self.store.update(
            session_id,
            attachment_candidates=files,
            candidates_loaded=True,
            candidate_error=None if files else EMPTY_FOLDER_NOTICE,
        )
        LOGGER.info(
            "candidates.loaded",
            extra={
                "event": "candidates.loaded",
                "session_id": session_id,
                "files": len(files),
            },
        )
        return files

    async def load_candidate_contents(self, session_id: str) -> tuple[FileContent, ...]:
        """Fetch the text of the loaded candidates once, for providers without file refs.

        Returns () until the listing is loaded, or when the catalog cannot
        extract text.
        """
        session = self._require(session_id)
        if session.contents_loaded:
            return session.candidate_contents
        list_contents = getattr(self.catalog, "list_candidate_contents", None)
        if list_contents is None or not session.attachment_candidates:
            return ()

        name = f"contents:{session_id}"
        task = self.tasks.get(name)
        if task is None or not self.tasks.is_running(name):
            task = self.tasks.spawn(
                self._fetch_contents(
                    list_contents, session_id, session.attachment_candidates
                ),
                name=name,
            )
        return await task

    async def _fetch_contents(
        self,
        list_contents: Callable[[Sequence[FileRef]], Awaitable[list[FileContent]]],
        session_id: str,
        files: tuple[FileRef, ...],
    ) -> tuple[FileContent, ...]:
        try:
            contents = tuple(await list_contents(files))
        except ProviderError as exc:
            LOGGER.warning(
                "contents.load.failed",
                extra={
                    "event": "contents.load.failed",
                    "session_id": session_id,
                    "error": str(exc),
                },
            )
            self.store.update(session_id, candidate_error=FOLDER_FAILED_NOTICE)
            return ()

        self.store.update(session_id, candidate_contents=contents, contents_loaded=True)
        LOGGER.info(
            "contents.loaded",
            extra={
                "event": "contents.loaded",
                "session_id": session_id,
                "files": len(contents),
            },
        )
        return contents

    # -- exchanges ----------------------------------------------------------

    async def start_session(
        self, session_id: str
    ) -> asyncio.Task[ExchangeResult] | None:
        """Leave picking-mode and send the subject context as the first message.

        Waits for the folder listing and, when the provider cannot take file
        references, for the files' text. The phase is awaiting-first-response
        until the first exchange settles, then in-conversation.

        Returns None when the session was dismissed or started elsewhere while
        the files were loading.
        """
        session = self._require_picking(session_id)
        if session.preset is None:
            raise SessionStateError(f"Pick a preset before starting {session_id!r}.")

        await self.load_candidate_files(session_id)
        current = self.store.get(session_id)
        if (
            current is not None
            and current.phase is SessionPhase.PICKING_MODE
            and not self.takes_file_refs(current.provider_selection.provider)
        ):
            await self.load_candidate_contents(session_id)
            current = self.store.get(session_id)

        if current is None or current.phase is not SessionPhase.PICKING_MODE:
            LOGGER.info(
                "session.start.skipped",
                extra={"event": "session.start.skipped", "session_id": session_id},
            )
            return None
        return self._open_conversation(session_id, SessionPhase.AWAITING_FIRST_RESPONSE)

    def _open_conversation(
        self, session_id: str, phase: SessionPhase
    ) -> asyncio.Task[ExchangeResult]:
        session = self._require_picking(session_id)
        system = TranscriptEntry(
            Role.SYSTEM,
            (session.system_prompt or "").strip()
            or self.ai_config.fallback_system_prompt,
        )
        native = self.takes_file_refs(session.provider_selection.provider)
        message = build_context_message(
            session.preset,
            session.subject_context,
            file_contents=() if native else session.candidate_contents,
            uploaded_files=session.uploaded_files,
        )
        self.store.update(session_id, transcript=(system,), phase=phase)
        return self.send_to_session(session_id, message)

    def send_to_session(
        self, session_id: str, text: str
    ) -> asyncio.Task[ExchangeResult]:
        """Send a user message; returns the task running the exchange.

        The user message and busy flag are applied before this returns.
        """
        session = self._require(session_id)
        if session.is_busy:
            raise SessionBusyError(f"Session {session_id!r} is busy.")
        if session.phase is SessionPhase.PICKING_MODE:
            raise SessionStateError(f"Session {session_id!r} has not started.")
        if not text.strip():
            raise SessionStateError("Cannot send an empty message.")

        # Attachments only ride along with the first turn.
        refs: tuple[FileRef, ...] = ()
        if not session.has_started and self.takes_file_refs(
            session.provider_selection.provider
        ):
            refs = session.attachment_candidates
        request = ExchangeRequest(
            session_id=session_id,
            user_text=text.strip(),
            prior_transcript=session.transcript,
            provider=session.provider_selection.provider,
            model=session.provider_selection.model,
            attachment_refs=refs,
        )
        working = self.runner.begin(request)
        return self.tasks.spawn(
            self.runner.complete(request, working), name=f"exchange:{session_id}"
        )

    def auto_run(
        self,
        subject_key: str,
        subject_context: SubjectContext,
        preset_id: str,
        on_first_reply: Callable[[ExchangeResult], Any] | None = None,
    ) -> asyncio.Task[ExchangeResult] | None:
        """One-click flow: create, skip picking-mode, and send the preset's first message.

        Returns None when the subject already has a session that left picking-mode.
        """
        session = self.create_session(subject_key, subject_context)
        if session.phase is not SessionPhase.PICKING_MODE:
            return None
        self.select_preset(session.session_id, preset_id)
        exchange = self._open_conversation(
            session.session_id, SessionPhase.IN_CONVERSATION
        )
        if on_first_reply is not None:
            self.tasks.spawn(self._deliver_first_reply(exchange, on_first_reply))
        return exchange

    @staticmethod
    async def _deliver_first_reply(
        exchange: asyncio.Task[ExchangeResult],
        callback: Callable[[ExchangeResult], Any],
    ) -> None:
        result = await exchange
        if result.applied:
            callback(result)

    def auto_format_draft(
        self,
        draft_key: str,
        draft_context: SubjectContext,
        on_apply_html: Callable[[str], Any] | None = None,
    ) -> asyncio.Task[ExchangeResult] | None:
        """Format a draft and hand the first reply's HTML to the editor once."""

        def apply_html(result: ExchangeResult) -> None:
            if not result.ok or on_apply_html is None:
                return
            html = extract_html_block(result.reply.text)
            if html:
                on_apply_html(html)

        return self.auto_run(draft_key, draft_context, DRAFT_FORMAT, apply_html)

    # -- shutdown -----------------------------------------------------------

    async def shutdown(self, timeout: float | None = None) -> None:
        """Let exchanges finish (cancelling stragglers after ``timeout``) and close transports."""
        finished = await self.tasks.await_all(timeout=timeout)
        if not finished:
            LOGGER.warning(
                "manager.shutdown.cancelled",
                extra={"event": "manager.shutdown.cancelled", "pending": len(self.tasks)},
            )
            await self.tasks.cancel_all()
        self.projector.close()
        closers = {id(obj): obj for obj in (self.transport, self.catalog) if obj is not None}
        for obj in closers.values():
            close = getattr(obj, "aclose", None)
            if close is not None:
                await close()
