"""Domain exception hierarchy for the AI session manager."""

from __future__ import annotations


class GovmailAIError(RuntimeError):
    """Base class for all domain-level errors."""


class ProviderError(GovmailAIError):
    """Raised when an AI provider exchange fails."""

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class ProviderRateLimitError(ProviderError):
    """Raised when the provider (or every key behind it) is throttling requests."""


class ProviderRequestError(ProviderError):
    """Raised for any other provider or network failure."""


class SessionError(GovmailAIError):
    """Base class for session lifecycle violations."""


class SessionNotFoundError(SessionError):
    """Raised when an operation names a session that does not exist."""


class SessionBusyError(SessionError):
    """Raised when a session already has an exchange in flight."""


class SessionStateError(SessionError):
    """Raised when an operation is not valid in the session's current phase."""


class SessionRetiredError(SessionError):
    """Raised when a dismissed session id would be reused."""


class TranscriptOrderError(SessionError):
    """Raised when an update would reorder or drop transcript entries."""


class ConfigValidationError(GovmailAIError):
    """Raised when configuration cannot be validated safely."""
