"""Session server abstraction and its HTTP implementation."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx

from superagents.config import ServerConfig
from superagents.exceptions import SessionServiceError
from superagents.logging import get_logger
from superagents.models import SessionEvent, SessionMessage

log = get_logger(__name__)


class SessionService(ABC):
    """Abstract session server consumed by the task engine."""

    @abstractmethod
    async def create(self, parent_id: str, title: str) -> str:
        """Create a child session and return its id."""

    @abstractmethod
    async def prompt_async(
        self,
        session_id: str,
        agent: str,
        content: str,
        tools: dict[str, bool] | None = None,
    ) -> None:
        """Start a turn without waiting for it to finish."""

    @abstractmethod
    async def prompt(self, session_id: str, agent: str, content: str) -> None:
        """Inject a message into a session and wait for the server to accept it."""

    @abstractmethod
    async def status(self) -> dict[str, str]:
        """Batched status query: session id -> ``idle`` | ``busy``."""

    @abstractmethod
    async def messages(self, session_id: str) -> list[SessionMessage]:
        pass

    @abstractmethod
    async def abort(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def exists(self, session_id: str) -> bool:
        pass

    async def fork(self, session_id: str) -> str:
        """Clone a session with its history. Optional capability."""
        raise NotImplementedError("Session forking is not supported by this server")

    @abstractmethod
    def subscribe_events(self) -> AsyncIterator[SessionEvent]:
        """Open the server event stream."""

    @abstractmethod
    async def show_toast(
        self,
        title: str,
        message: str,
        variant: str = "info",
        duration_ms: int = 5000,
    ) -> None:
        pass

    async def close(self) -> None:
        return None


class OpencodeClient(SessionService):
    """HTTP client for an opencode-compatible session server."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:4096",
        directory: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.directory = directory.strip()
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @classmethod
    def from_config(cls, settings: ServerConfig) -> OpencodeClient:
        return cls(
            base_url=settings.base_url,
            directory=settings.directory,
            timeout=settings.timeout_seconds,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _params(self) -> dict[str, str]:
        return {"directory": self.directory} if self.directory else {}

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                self._url(path),
                params=self._params(),
                json=body,
            )
        except httpx.HTTPError as e:
            raise SessionServiceError(f"Session server request failed ({method} {path}): {e}")

        if not response.is_success:
            raise SessionServiceError(
                f"Session server error {response.status_code} ({method} {path}): {response.text}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise SessionServiceError(f"Session server returned invalid JSON: {e}")

    @staticmethod
    def _text_parts(content: str) -> list[dict[str, str]]:
        return [{"type": "text", "text": content}]

    async def create(self, parent_id: str, title: str) -> str:
        body: dict[str, Any] = {"title": title}
        if parent_id:
            body["parentID"] = parent_id
        data = self._json(await self._request("POST", "/session", body))
        session_id = data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise SessionServiceError("Session server did not return a session id")
        log.debug("Session created", session_id=session_id, parent_id=parent_id)
        return str(session_id)

    async def prompt_async(
        self,
        session_id: str,
        agent: str,
        content: str,
        tools: dict[str, bool] | None = None,
    ) -> None:
        body: dict[str, Any] = {"agent": agent, "parts": self._text_parts(content)}
        if tools is not None:
            body["tools"] = dict(tools)
        await self._request("POST", f"/session/{session_id}/prompt_async", body)

    async def prompt(self, session_id: str, agent: str, content: str) -> None:
        body: dict[str, Any] = {"parts": self._text_parts(content)}
        if agent:
            body["agent"] = agent
        await self._request("POST", f"/session/{session_id}/message", body)

    async def status(self) -> dict[str, str]:
        data = self._json(await self._request("GET", "/session/status"))
        if not isinstance(data, dict):
            return {}
        statuses: dict[str, str] = {}
        for session_id, entry in data.items():
            if isinstance(entry, dict):
                statuses[str(session_id)] = str(entry.get("type", ""))
            elif isinstance(entry, str):
                statuses[str(session_id)] = entry
        return statuses

    async def messages(self, session_id: str) -> list[SessionMessage]:
        data = self._json(await self._request("GET", f"/session/{session_id}/message"))
        if not isinstance(data, list):
            return []
        return [SessionMessage.from_dict(item) for item in data if isinstance(item, dict)]

    async def abort(self, session_id: str) -> None:
        await self._request("POST", f"/session/{session_id}/abort")

    async def exists(self, session_id: str) -> bool:
        try:
            data = self._json(await self._request("GET", f"/session/{session_id}"))
        except SessionServiceError as e:
            if e.status_code == 404:
                return False
            raise
        return bool(data)

    async def fork(self, session_id: str) -> str:
        try:
            data = self._json(await self._request("POST", f"/session/{session_id}/fork", {}))
        except SessionServiceError as e:
            if e.status_code in (404, 405, 501):
                raise NotImplementedError(str(e)) from e
            raise
        new_id = data.get("id") if isinstance(data, dict) else None
        if not new_id:
            raise SessionServiceError("Session server did not return a forked session id")
        return str(new_id)

    async def subscribe_events(self) -> AsyncIterator[SessionEvent]:
        """Yield server-sent events until the stream closes."""
        try:
            async with self._client.stream(
                "GET",
                self._url("/event"),
                params=self._params(),
                timeout=None,
            ) as response:
                if not response.is_success:
                    error_text = await response.aread()
                    raise SessionServiceError(
                        f"Event stream error {response.status_code}: {error_text!r}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    raw = line[len("data:"):].strip()
                    if not raw:
                        continue
                    try:
                        payload = json.loads(raw)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(payload, dict):
                        yield SessionEvent.from_dict(payload)
        except httpx.HTTPError as e:
            raise SessionServiceError(f"Event stream failed: {e}")

    async def show_toast(
        self,
        title: str,
        message: str,
        variant: str = "info",
        duration_ms: int = 5000,
    ) -> None:
        body = {
            "title": title,
            "message": message,
            "variant": variant,
            "duration": duration_ms,
        }
        await self._request("POST", "/tui/show-toast", body)
