"""HTTP client for the external development session (an OpenCode server)."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ExternalSessionUnreachable(Exception):
    """Raised when the session server cannot be reached or answers with an error."""


@dataclass(frozen=True)
class SessionInfo:
    id: str
    title: str = ""


@dataclass(frozen=True)
class MessagePart:
    type: str
    text: str = ""


@dataclass(frozen=True)
class SessionMessage:
    id: str
    role: str
    parts: tuple[MessagePart, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        """All ``text`` parts joined; other part types are ignored."""
        return "\n".join(p.text for p in self.parts if p.type == "text" and p.text)


class SessionClient(Protocol):
    async def check(self) -> None: ...

    async def list_sessions(self) -> list[SessionInfo]: ...

    async def get_messages(self, session_id: str) -> list[SessionMessage]: ...

    async def post_message(self, session_id: str, text: str) -> None: ...

    async def close(self) -> None: ...


def parse_message(raw: dict[str, Any], index: int) -> SessionMessage:
    info = raw.get("info") or {}
    parts = tuple(
        MessagePart(type=str(p.get("type", "")), text=str(p.get("text") or ""))
        for p in raw.get("parts") or []
        if isinstance(p, dict)
    )
    # Position stands in for a missing id so every message still has a marker
    message_id = str(info.get("id") or raw.get("id") or f"#{index}")
    role = str(info.get("role") or raw.get("role") or "")
    return SessionMessage(id=message_id, role=role, parts=parts)


class OpenCodeClient:
    """Async client for an OpenCode server.

    Uses one lazily created httpx.AsyncClient. Every transport failure and
    non-2xx answer surfaces as ExternalSessionUnreachable.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        client = self._get_client()
        try:
            response = await client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalSessionUnreachable(
                f"{method} {path} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalSessionUnreachable(f"{method} {path} failed: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def check(self) -> None:
        """Confirm the server answers. Raises ExternalSessionUnreachable otherwise."""
        await self._request("GET", "/project")

    async def list_sessions(self) -> list[SessionInfo]:
        data = await self._request("GET", "/session") or []
        return [
            SessionInfo(id=str(s["id"]), title=str(s.get("title", "")))
            for s in data
            if isinstance(s, dict) and s.get("id")
        ]

    async def get_messages(self, session_id: str) -> list[SessionMessage]:
        data = await self._request("GET", f"/session/{session_id}/message") or []
        return [parse_message(raw, i) for i, raw in enumerate(data) if isinstance(raw, dict)]

    async def post_message(self, session_id: str, text: str) -> None:
        await self._request(
            "POST",
            f"/session/{session_id}/message",
            json={"parts": [{"type": "text", "text": text}]},
        )
        logger.debug("Posted %d chars to session %s", len(text), session_id)
