"""Durable shadow of task metadata, kept as one JSON object on disk."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from superagents.exceptions import PersistenceError
from superagents.logging import get_logger
from superagents.models import PersistedTask
from superagents.timeutil import parse_iso

log = get_logger(__name__)


def _created_ts(record: PersistedTask) -> float:
    try:
        return parse_iso(record.created_at).timestamp()
    except ValueError:
        return 0.0


class TaskStore:
    """JSON file keyed by session id.

    A missing file is an empty store. A file that cannot be read or parsed is
    logged and also treated as empty. Writes go through a temporary file and
    an atomic replace; a failed write raises ``PersistenceError``.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        # Held for the whole load/mutate/write of save_one and delete.
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Sync primitives (run in a worker thread)
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, PersistedTask]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Failed to load task store", path=str(self.path), error=str(e))
            return {}
        if not isinstance(raw, dict):
            log.warning("Task store is not a JSON object", path=str(self.path))
            return {}

        tasks: dict[str, PersistedTask] = {}
        for session_id, entry in raw.items():
            if isinstance(entry, dict):
                tasks[str(session_id)] = PersistedTask.from_dict(entry)
        return tasks

    def _write(self, tasks: dict[str, PersistedTask]) -> None:
        payload: dict[str, Any] = {sid: record.to_dict() for sid, record in tasks.items()}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to save tasks to {self.path}: {e}") from e

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def load(self) -> dict[str, PersistedTask]:
        return await asyncio.to_thread(self._read)

    async def save(self, tasks: dict[str, PersistedTask]) -> None:
        await asyncio.to_thread(self._write, dict(tasks))

    async def save_one(self, session_id: str, record: PersistedTask) -> None:
        """Read-modify-write of a single entry."""
        async with self._write_lock:
            tasks = await self.load()
            tasks[session_id] = record
            await self.save(tasks)

    async def get(self, session_id: str) -> PersistedTask | None:
        tasks = await self.load()
        return tasks.get(session_id)

    async def delete(self, session_id: str) -> bool:
        async with self._write_lock:
            tasks = await self.load()
            if session_id not in tasks:
                return False
            del tasks[session_id]
            await self.save(tasks)
            return True

    async def resolve(self, id_or_prefix: str) -> tuple[str, PersistedTask] | None:
        """Exact id first, then the most recently created entry with that prefix."""
        key = (id_or_prefix or "").strip()
        if not key:
            return None
        tasks = await self.load()
        if key in tasks:
            return key, tasks[key]

        ordered = sorted(tasks.items(), key=lambda item: _created_ts(item[1]), reverse=True)
        for session_id, record in ordered:
            if session_id.startswith(key):
                return session_id, record
        return None
