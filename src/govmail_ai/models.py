"""Immutable records shared by the session store, runner and projector."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionPhase(str, Enum):
    """Lifecycle phase of one AI-assisted conversation."""

    PICKING_MODE = "picking-mode"
    AWAITING_FIRST_RESPONSE = "awaiting-first-response"
    IN_CONVERSATION = "in-conversation"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class SessionStatus(str, Enum):
    """Ambient status shown in the sessions list and toasts."""

    PENDING = "pending"
    THINKING = "thinking"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class TranscriptEntry:
    """One message of a session transcript.

    ``failed`` marks the synthetic assistant notice written when an exchange
    fails; it is never sent back to the provider.
    """

    role: Role
    text: str
    failed: bool = False

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.text}


@dataclass(frozen=True)
class FileRef:
    """A file in the cloud folder that may be recommended or attached."""

    id: str
    name: str
    mime_type: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> FileRef:
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            mime_type=str(payload.get("mimeType") or payload.get("mime_type") or ""),
        )

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "mimeType": self.mime_type}


@dataclass(frozen=True)
class FileContent:
    """Text of a file placed in the first message for providers without file refs.

    ``error`` is set instead of ``text`` when the backend could not extract it.
    """

    name: str
    text: str = ""
    error: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> FileContent:
        error = payload.get("error")
        return cls(
            name=str(payload.get("name", "")),
            text=str(payload.get("content") or ""),
            error=str(error) if error else None,
        )


@dataclass(frozen=True)
class Opportunity:
    """Procurement opportunity matched to an email thread."""

    title: str = ""
    notice_id: str = ""
    drive_link: str = ""

    @property
    def folder_ref(self) -> str | None:
        """Return the drive folder link when it is a usable URL."""
        link = self.drive_link.strip()
        if link.startswith("http"):
            return link
        return None


@dataclass(frozen=True)
class SubjectContext:
    """Snapshot of the email or draft a session was opened on."""

    sender: str = ""
    recipient: str = ""
    subject: str = ""
    body: str = ""
    date: str = ""
    account: str = ""
    opportunity: Opportunity | None = None
    signature: str = ""
    opt_out_line: str = ""


@dataclass(frozen=True)
class ProviderSelection:
    provider: str
    model: str


@dataclass(frozen=True)
class Recommendation:
    """A file the assistant asked to attach, as declared in its reply."""

    declared_filename: str
    reason: str = ""


@dataclass(frozen=True)
class RecommendedAttachment:
    """A recommendation resolved against the candidate file listing."""

    declared_filename: str
    reason: str
    matched_file: FileRef | None = None

    @property
    def found(self) -> bool:
        return self.matched_file is not None


@dataclass(frozen=True)
class Session:
    """State of one AI-assisted conversation tied to a message or draft."""

    session_id: str
    subject_context: SubjectContext
    subject_key: str = ""
    phase: SessionPhase = SessionPhase.PICKING_MODE
    transcript: tuple[TranscriptEntry, ...] = ()
    is_busy: bool = False
    provider_selection: ProviderSelection = ProviderSelection("gemini", "gemini-3-flash-preview")
    preset: str | None = None
    system_prompt: str = ""
    exchange_count: int = 0
    attachment_candidates: tuple[FileRef, ...] = ()
    candidates_loaded: bool = False
    candidate_error: str | None = None
    candidate_contents: tuple[FileContent, ...] = ()
    contents_loaded: bool = False
    uploaded_files: tuple[FileContent, ...] = ()
    recommended_attachments: tuple[RecommendedAttachment, ...] = field(default=())

    @property
    def has_started(self) -> bool:
        """Return True once any exchange has been issued for this session."""
        return self.exchange_count > 0

    @property
    def assistant_entries(self) -> list[TranscriptEntry]:
        return [entry for entry in self.transcript if entry.role is Role.ASSISTANT]

    @property
    def last_entry(self) -> TranscriptEntry | None:
        return self.transcript[-1] if self.transcript else None


@dataclass(frozen=True)
class SessionStatusView:
    """Lightweight projection row for badges, lists and toasts."""

    session_id: str
    status: SessionStatus
    subject_preview: str
    account: str = ""
    assistant_count: int = 0


@dataclass(frozen=True)
class ModelOption:
    """A provider/model pair offered by the backend."""

    provider: str
    model: str
    label: str = ""

    @property
    def selection(self) -> ProviderSelection:
        return ProviderSelection(self.provider, self.model)
