"""Top-level package for govmail-ai."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import Config, ensure_config_dir, load_config
    from .exceptions import (
        ConfigValidationError,
        GovmailAIError,
        ProviderError,
        ProviderRateLimitError,
        ProviderRequestError,
        SessionBusyError,
        SessionError,
        SessionNotFoundError,
        SessionStateError,
    )
    from .manager import AISessionManager
    from .matcher import parse_recommendations, recommend_attachments
    from .session_store import SessionStore
    from .transport import BackendClient
    from .uploads import read_upload

__all__ = [
    "AISessionManager",
    "BackendClient",
    "Config",
    "ConfigValidationError",
    "GovmailAIError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderRequestError",
    "SessionBusyError",
    "SessionError",
    "SessionNotFoundError",
    "SessionStateError",
    "SessionStore",
    "ensure_config_dir",
    "load_config",
    "parse_recommendations",
    "read_upload",
    "recommend_attachments",
]

_EXCEPTIONS = {
    "ConfigValidationError",
    "GovmailAIError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderRequestError",
    "SessionBusyError",
    "SessionError",
    "SessionNotFoundError",
    "SessionStateError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    if name == "AISessionManager":
        from .manager import AISessionManager

        return AISessionManager
    if name == "BackendClient":
        from .transport import BackendClient

        return BackendClient
    if name in {"Config", "ensure_config_dir", "load_config"}:
        from . import config

        return getattr(config, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"parse_recommendations", "recommend_attachments"}:
        from . import matcher

        return getattr(matcher, name)
    if name == "SessionStore":
        from .session_store import SessionStore

        return SessionStore
    if name == "read_upload":
        from .uploads import read_upload

        return read_upload
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
