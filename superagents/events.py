"""Push channel of the completion detector: the server event stream."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from superagents.logging import get_logger
from superagents.models import SessionEvent
from superagents.session_service import SessionService

log = get_logger(__name__)

CLEARING_COMMANDS = frozenset({"session.new", "prompt.clear", "session.interrupt"})

# Event kinds understood by the orchestrator.
IDLE = "idle"
DELETED = "deleted"
CLEAR = "clear"


@dataclass
class EventAction:
    kind: str
    session_id: str = ""


def classify_event(event: SessionEvent) -> EventAction | None:
    """Map a raw server event to what the orchestrator should do with it."""
    props = event.properties

    if event.type == "session.idle":
        session_id = props.get("sessionID")
        if session_id:
            return EventAction(IDLE, str(session_id))
        return None

    if event.type == "session.deleted":
        info = props.get("info")
        session_id = info.get("id") if isinstance(info, dict) else None
        if session_id:
            return EventAction(DELETED, str(session_id))
        return None

    if event.type == "tui.command.execute":
        if props.get("command") in CLEARING_COMMANDS:
            return EventAction(CLEAR)
        return None

    return None


class EventListener:
    """Subscribes to the event stream and forwards every event to a queue.

    Runs until cancelled. A failed subscription or a closed stream is
    retried after ``reconnect_seconds``.
    """

    def __init__(
        self,
        service: SessionService,
        queue: asyncio.Queue[Any],
        reconnect_seconds: float = 1.0,
    ):
        self.service = service
        self.queue = queue
        self.reconnect_seconds = reconnect_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        while True:
            try:
                async for event in self.service.subscribe_events():
                    await self.queue.put(event)
                log.debug("Event stream closed, reconnecting")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.debug("Event stream failed, reconnecting", error=str(e))
            await asyncio.sleep(self.reconnect_seconds)
