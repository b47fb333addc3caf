import asyncio
from typing import Any

import pytest
import structlog

from superagents.config import Config, StorageConfig, TasksConfig
from superagents.exceptions import SessionServiceError
from superagents.manager import TaskManager
from superagents.models import LaunchInput, SessionEvent, SessionMessage
from superagents.session_service import SessionService
from superagents.storage import TaskStore

PARENT_ID = "ses_parent0001"


@pytest.fixture(autouse=True)
def _isolate_structlog(monkeypatch):
    """Keep loggers from caching streams (e.g. CliRunner's stderr) across tests."""
    real_configure = structlog.configure

    def configure(**kwargs):
        kwargs["cache_logger_on_first_use"] = False
        real_configure(**kwargs)

    monkeypatch.setattr(structlog, "configure", configure)
    yield
    structlog.reset_defaults()


class FakeSessionService(SessionService):
    """In-memory session server with knobs for failures."""

    def __init__(self):
        self.sessions: set[str] = {PARENT_ID}
        self.statuses: dict[str, str] = {}
        self.histories: dict[str, list[SessionMessage]] = {}
        self.created: list[dict[str, Any]] = []
        self.dispatched: list[dict[str, Any]] = []
        self.prompts: list[dict[str, Any]] = []
        self.toasts: list[dict[str, Any]] = []
        self.aborted: list[str] = []
        self.forked: list[str] = []
        self.fork_supported = False
        self.prompt_async_error: Exception | None = None
        self.prompt_error: Exception | None = None
        self.status_error: Exception | None = None
        self.subscribe_failures = 0
        self.subscriptions = 0
        self.event_queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"ses_child{self._counter:03d}xyz"

    def add_message(self, session_id: str, role: str, text: str = "", tools: tuple[str, ...] = ()) -> None:
        parts: list[dict[str, Any]] = [{"type": "tool", "tool": name} for name in tools]
        if text:
            parts.append({"type": "text", "text": text})
        self.histories.setdefault(session_id, []).append(SessionMessage(role=role, parts=parts))

    def prompts_to(self, session_id: str) -> list[str]:
        return [p["content"] for p in self.prompts if p["session_id"] == session_id]

    async def create(self, parent_id: str, title: str) -> str:
        session_id = self._next_id()
        self.sessions.add(session_id)
        self.created.append({"id": session_id, "parent_id": parent_id, "title": title})
        return session_id

    async def prompt_async(self, session_id, agent, content, tools=None) -> None:
        self.dispatched.append(
            {"session_id": session_id, "agent": agent, "content": content, "tools": tools}
        )
        if self.prompt_async_error is not None:
            raise self.prompt_async_error

    async def prompt(self, session_id, agent, content) -> None:
        if self.prompt_error is not None:
            raise self.prompt_error
        self.prompts.append({"session_id": session_id, "agent": agent, "content": content})

    async def status(self) -> dict[str, str]:
        if self.status_error is not None:
            raise self.status_error
        return dict(self.statuses)

    async def messages(self, session_id: str) -> list[SessionMessage]:
        return list(self.histories.get(session_id, []))

    async def abort(self, session_id: str) -> None:
        self.aborted.append(session_id)

    async def exists(self, session_id: str) -> bool:
        return session_id in self.sessions

    async def fork(self, session_id: str) -> str:
        if not self.fork_supported:
            raise NotImplementedError("no fork")
        new_id = self._next_id()
        self.sessions.add(new_id)
        self.forked.append(session_id)
        return new_id

    async def subscribe_events(self):
        self.subscriptions += 1
        if self.subscribe_failures > 0:
            self.subscribe_failures -= 1
            raise SessionServiceError("event stream unavailable")
        while True:
            event = await self.event_queue.get()
            if event is None:
                return
            yield event

    async def show_toast(self, title, message, variant="info", duration_ms=5000) -> None:
        self.toasts.append(
            {"title": title, "message": message, "variant": variant, "duration": duration_ms}
        )


def make_test_config(tmp_path, **task_overrides) -> Config:
    tasks = {
        "poll_interval_ms": 60_000,
        "notify_delay_ms": 0,
        "wait_poll_seconds": 0.01,
        "resume_poll_seconds": 0.01,
        "event_reconnect_seconds": 0.01,
    }
    tasks.update(task_overrides)
    return Config(
        tasks=TasksConfig(**tasks),
        storage=StorageConfig(path=str(tmp_path / "tasks.json")),
    )


@pytest.fixture
def fake_service() -> FakeSessionService:
    return FakeSessionService()


@pytest.fixture
def make_manager(fake_service, tmp_path):
    def _make(**task_overrides) -> TaskManager:
        config = make_test_config(tmp_path, **task_overrides)
        return TaskManager(
            fake_service,
            store=TaskStore(config.storage.path),
            config=config,
        )

    return _make


@pytest.fixture
def manager(make_manager) -> TaskManager:
    return make_manager()


@pytest.fixture
def launch_input():
    def _input(**overrides) -> LaunchInput:
        values = {
            "description": "Research caching",
            "prompt": "Find every cache layer in the repo",
            "agent": "explore",
            "parent_session_id": PARENT_ID,
            "parent_message_id": "msg_1",
            "parent_agent": "build",
        }
        values.update(overrides)
        return LaunchInput(**values)

    return _input
