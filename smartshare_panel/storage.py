"""Key-value storage used by the panel: a session area and a durable area."""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

StorageChanges = Dict[str, Dict[str, Any]]
ChangeListener = Callable[[StorageChanges], None]

PAGE_CONTENT_KEY = "pageContent"
PAGE_URL_KEY = "pageUrl"
HISTORY_KEY = "history"

logger = logging.getLogger(__name__)


class StorageArea:
    """In-memory storage area with change notifications.

    ``set`` notifies listeners with ``{key: {"newValue": ..., "oldValue": ...}}``
    for the keys whose value actually changed.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})
        self._listeners: List[ChangeListener] = []

    def add_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        changes: StorageChanges = {}
        for key, value in items.items():
            old_value = self._data.get(key)
            if key in self._data and old_value == value:
                continue
            self._data[key] = copy.deepcopy(value)
            changes[key] = {"newValue": copy.deepcopy(value), "oldValue": old_value}
        await self._persist()
        if changes:
            self._notify(changes)

    async def _persist(self) -> None:
        return None

    def _notify(self, changes: StorageChanges) -> None:
        for listener in list(self._listeners):
            listener(changes)


class SessionStorage(StorageArea):
    """Storage shared by the panel and the background worker for one run."""


class DurableStorage(StorageArea):
    """Storage area backed by a JSON file that survives restarts."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        super().__init__(self._load())
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Ignoring storage file %s: expected a JSON object", self.path)
            return {}
        return payload

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        await self._reload()
        return await super().get(keys)

    async def set(self, items: Mapping[str, Any]) -> None:
        await self._reload()
        await super().set(items)

    async def _reload(self) -> None:
        # Other processes may have rewritten the file since the last read.
        async with self._lock:
            loop = asyncio.get_running_loop()
            self._data = await loop.run_in_executor(None, self._load)

    async def _persist(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            snapshot = json.dumps(self._data, indent=2, ensure_ascii=False)
            await loop.run_in_executor(None, self._write, snapshot)

    def _write(self, snapshot: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Readers only ever see the old or the new file.
        fd, tmp_name = tempfile.mkstemp(prefix=".storage-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(snapshot)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
