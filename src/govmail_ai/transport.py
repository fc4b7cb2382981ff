"""Async transports that carry a session transcript to an AI provider.

``BackendClient`` talks to the dashboard backend over HTTP (which in turn
fans out to the hosted providers and the Drive folder listing);
``OllamaTransport`` serves the ``ollama`` provider from a local server.
``ProviderRouter`` picks one per exchange by provider name.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from ollama import AsyncClient as OllamaAsyncClient
from ollama import ResponseError as OllamaResponseError

from .exceptions import ProviderError, ProviderRateLimitError, ProviderRequestError
from .models import FileContent, FileRef, ModelOption

LOGGER = logging.getLogger(__name__)

WireMessage = dict[str, str]


def is_rate_limit_detail(detail: str) -> bool:
    """Return True when failure text signals provider throttling."""
    text = detail or ""
    return "rate-limit" in text.lower() or "429" in text


class ConversationTransport(Protocol):
    async def send_conversation(
        self,
        transcript: Sequence[WireMessage],
        provider: str,
        model: str,
        file_refs: Sequence[FileRef] | None = None,
    ) -> str: ...


def _error_detail(response: httpx.Response) -> str:
    """Pull ``details`` or ``error`` text out of a backend error payload."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:500]
    if isinstance(payload, dict):
        for key in ("details", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


class BackendClient:
    """HTTP client for the dashboard backend's AI and Drive endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 600.0,
        retries: int = 1,
        retry_backoff_seconds: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url
        self.retries = max(0, retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._closed = False
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._closed:
            return
        await self._client.aclose()
        self._closed = True

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Issue a request, retrying only when the connection never opened."""
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, endpoint, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return {}
                return response.json()
            except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
                mapped = self._map_exception(exc)
                LOGGER.warning(
                    "backend.request.retry",
                    extra={
                        "event": "backend.request.retry",
                        "endpoint": endpoint,
                        "attempt": attempt + 1,
                        "error_type": type(exc).__name__,
                    },
                )
                if attempt >= self.retries:
                    raise mapped from exc
                attempt += 1
                await asyncio.sleep(self.retry_backoff_seconds * attempt)
            except (httpx.HTTPError, ValueError) as exc:
                raise self._map_exception(exc) from exc

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc

        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            if status == 429 or is_rate_limit_detail(detail):
                return ProviderRateLimitError(
                    "The AI provider is rate-limiting requests.", detail=detail
                )
            return ProviderRequestError(
                f"Backend returned HTTP {status}.", detail=detail
            )

        if isinstance(exc, httpx.TimeoutException):
            return ProviderRequestError(
                "Timed out waiting for the backend.", detail="The request timed out."
            )

        if isinstance(exc, httpx.RequestError):
            return ProviderRequestError(
                f"Unable to reach the backend at {self.base_url}.",
                detail=f"Unable to reach the backend at {self.base_url}.",
            )

        if isinstance(exc, ValueError):
            return ProviderRequestError(
                "Backend response was not valid JSON.", detail=str(exc)
            )

        return ProviderRequestError(str(exc), detail=str(exc))

    async def send_conversation(
        self,
        transcript: Sequence[WireMessage],
        provider: str,
        model: str,
        file_refs: Sequence[FileRef] | None = None,
    ) -> str:
        """Send the full transcript and return the assistant reply text."""
        body: dict[str, Any] = {
            "messages": list(transcript),
            "provider": provider,
            "model": model,
        }
        if file_refs:
            body["drive_files"] = [ref.to_payload() for ref in file_refs]

        LOGGER.info(
            "backend.chat.start",
            extra={
                "event": "backend.chat.start",
                "provider": provider,
                "model": model,
                "messages": len(body["messages"]),
                "files": len(file_refs or ()),
            },
        )
        payload = await self._request("POST", "ai/chat", json=body)
        reply = payload.get("reply") if isinstance(payload, dict) else None
        if not isinstance(reply, str):
            raise ProviderRequestError(
                "Backend response did not include a reply.",
                detail="The AI returned an empty response.",
            )
        return reply

    async def list_models(self) -> list[ModelOption]:
        """Return the provider/model pairs the backend offers."""
        payload = await self._request("GET", "ai/models")
        rows = payload.get("models") if isinstance(payload, dict) else payload
        options: list[ModelOption] = []
        if isinstance(rows, list):
            for row in rows:
                if not isinstance(row, dict):
                    continue
                provider = str(row.get("provider", "")).strip()
                model = str(row.get("model", "")).strip()
                if provider and model:
                    label = str(row.get("label") or f"{provider}:{model}")
                    options.append(ModelOption(provider, model, label))
        return options

    async def list_candidate_files(self, folder_ref: str) -> list[FileRef]:
        """List the files in a Drive folder."""
        payload = await self._request("GET", "drive/files", params={"link": folder_ref})
        rows = payload.get("files") if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            return []
        return [FileRef.from_payload(row) for row in rows if isinstance(row, dict)]

    async def list_candidate_contents(
        self, files: Sequence[FileRef]
    ) -> list[FileContent]:
        """Download the extracted text of Drive files, for providers without file refs."""
        payload = await self._request(
            "POST",
            "drive/files/content",
            json={"files": [file_ref.to_payload() for file_ref in files]},
        )
        rows = payload.get("files") if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            return []
        return [FileContent.from_payload(row) for row in rows if isinstance(row, dict)]

    def download_url(self, file_ref: FileRef) -> str:
        """Build the link used to download a matched file."""
        url = self._client.base_url.join(
            f"drive/download/{quote(file_ref.id, safe='')}"
        )
        return str(
            url.copy_merge_params({"name": file_ref.name, "mime_type": file_ref.mime_type})
        )


class OllamaTransport:
    """Serve exchanges from a local Ollama server.

    File references cannot be fetched by the local model and are dropped.
    """

    def __init__(
        self,
        host: str,
        timeout: float = 600.0,
        client: Any | None = None,
    ) -> None:
        self.host = host
        self._client = client or OllamaAsyncClient(host=host, timeout=timeout)

    @staticmethod
    def _extract_content(response: Any) -> str:
        message = getattr(response, "message", None)
        if message is not None:
            content = getattr(message, "content", None)
            if isinstance(content, str):
                return content
        if isinstance(response, dict):
            message = response.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]
        return ""

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, OllamaResponseError):
            detail = str(getattr(exc, "error", "") or exc)
            if getattr(exc, "status_code", None) == 429 or is_rate_limit_detail(detail):
                return ProviderRateLimitError("Ollama is rate-limiting requests.", detail)
            return ProviderRequestError(f"Ollama request failed: {detail}", detail)
        if isinstance(exc, httpx.HTTPError):
            detail = f"Unable to reach Ollama at {self.host}."
            return ProviderRequestError(detail, detail)
        return ProviderRequestError(str(exc), detail=str(exc))

    async def send_conversation(
        self,
        transcript: Sequence[WireMessage],
        provider: str,
        model: str,
        file_refs: Sequence[FileRef] | None = None,
    ) -> str:
        if file_refs:
            LOGGER.debug(
                "ollama.chat.files_ignored",
                extra={"event": "ollama.chat.files_ignored", "files": len(file_refs)},
            )
        try:
            response = await self._client.chat(
                model=model, messages=list(transcript), stream=False
            )
        except Exception as exc:
            raise self._map_exception(exc) from exc
        reply = self._extract_content(response)
        if not reply:
            raise ProviderRequestError(
                "Ollama returned an empty response.",
                detail="The AI returned an empty response.",
            )
        return reply


class ProviderRouter:
    """Dispatch each exchange to the transport registered for its provider."""

    def __init__(
        self,
        default: ConversationTransport,
        routes: dict[str, ConversationTransport] | None = None,
    ) -> None:
        self.default = default
        self._routes: dict[str, ConversationTransport] = dict(routes or {})

    def register(self, provider: str, transport: ConversationTransport) -> None:
        self._routes[provider.strip().lower()] = transport

    def transport_for(self, provider: str) -> ConversationTransport:
        return self._routes.get(provider.strip().lower(), self.default)

    async def send_conversation(
        self,
        transcript: Sequence[WireMessage],
        provider: str,
        model: str,
        file_refs: Sequence[FileRef] | None = None,
    ) -> str:
        transport = self.transport_for(provider)
        return await transport.send_conversation(transcript, provider, model, file_refs)

    async def aclose(self) -> None:
        seen: set[int] = set()
        for transport in [self.default, *self._routes.values()]:
            if id(transport) in seen:
                continue
            seen.add(id(transport))
            close = getattr(transport, "aclose", None)
            if close is not None:
                await close()
