"""Configuration loading and validation for the AI session manager."""

from __future__ import annotations

from copy import deepcopy
import logging
from pathlib import Path
import tomllib
from typing import Any
from urllib.parse import urlparse

from platformdirs import user_config_path, user_state_path
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError
from .prompts import FALLBACK_SYSTEM_PROMPT, PRESETS

LOGGER = logging.getLogger(__name__)

APP_NAME = "govmail-ai"
CONFIG_DIR = user_config_path(APP_NAME)
CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_LOG_PATH = str(user_state_path(APP_NAME) / "app.log")

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _require_http_url(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string.")
    normalized = value.strip()
    parsed = urlparse(normalized)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise ValueError(f"{field_name} must be an http(s) URL with a hostname.")
    return normalized


class BackendConfig(BaseModel):
    """Dashboard backend endpoint used for AI exchanges and Drive listings."""

    base_url: str = "http://localhost:3000/api"
    # Upstream providers back off on rate limits, so exchanges may take minutes.
    timeout: int = Field(default=600, ge=1, le=3600)
    retries: int = Field(default=1, ge=0, le=10)
    retry_backoff_seconds: float = Field(default=0.5, ge=0.0, le=60.0)

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        return _require_http_url(value, "base_url")


class AIConfig(BaseModel):
    """Default provider selection and prompt settings for new sessions."""

    default_provider: str = "gemini"
    default_model: str = "gemini-3-flash-preview"
    fallback_system_prompt: str = FALLBACK_SYSTEM_PROMPT
    prompt_overrides: dict[str, str] = Field(default_factory=dict)
    subject_preview_length: int = Field(default=50, ge=10, le=500)
    native_file_providers: list[str] = Field(default_factory=lambda: ["gemini"])

    @field_validator("default_provider", "default_model", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("String value must not be empty.")
        return normalized

    @field_validator("prompt_overrides", mode="before")
    @classmethod
    def _validate_overrides(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("prompt_overrides must be a table of preset -> prompt.")
        overrides: dict[str, str] = {}
        for key, prompt in value.items():
            if not isinstance(key, str) or not key.strip():
                raise ValueError("prompt_overrides keys must be non-empty strings.")
            if not isinstance(prompt, str):
                raise ValueError("prompt_overrides values must be strings.")
            if prompt.strip():
                overrides[key.strip()] = prompt.strip()
        return overrides

    @field_validator("native_file_providers", mode="before")
    @classmethod
    def _validate_providers(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError("native_file_providers must be a list of provider names.")
        return [item.strip().lower() for item in value if item.strip()]


class OllamaConfig(BaseModel):
    """Optional local provider served by an Ollama host."""

    enabled: bool = False
    host: str = "http://localhost:11434"
    timeout: int = Field(default=600, ge=1, le=3600)

    @field_validator("host", mode="before")
    @classmethod
    def _validate_host(cls, value: Any) -> str:
        return _require_http_url(value, "host")


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = DEFAULT_LOG_PATH

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("log_file_path must be a non-empty string.")
        return value.strip()


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    backend: BackendConfig = BackendConfig()
    ai: AIConfig = AIConfig()
    ollama: OllamaConfig = OllamaConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _validate_preset_names(self) -> Config:
        unknown = set(self.ai.prompt_overrides) - set(PRESETS)
        if unknown:
            raise ValueError(f"prompt_overrides names unknown presets: {sorted(unknown)}")
        return self


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _validate_config(raw: dict[str, Any]) -> Config:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        return Config.model_validate(raw)
    except ValidationError as exc:
        LOGGER.warning(
            "config.invalid",
            extra={"event": "config.invalid", "reason": str(exc)},
        )
        return Config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    return _validate_config(_deep_merge(DEFAULT_CONFIG, raw_data))
