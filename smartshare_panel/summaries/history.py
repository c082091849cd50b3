"""Bounded, newest-first log of past summarization outcomes."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..storage import HISTORY_KEY, StorageArea
from .types import SummarizationSettings

MAX_HISTORY_ENTRIES = 20

logger = logging.getLogger(__name__)


class HistoryStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class HistoryEntry:
    url: str
    summary_text: str
    status: HistoryStatus
    settings: SummarizationSettings
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, object]:
        return {
            "url": self.url,
            "summary": self.summary_text,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoryEntry":
        timestamp = datetime.fromisoformat(str(data["timestamp"]))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        settings = data.get("settings")
        return cls(
            url=str(data.get("url", "")),
            summary_text=str(data.get("summary", "")),
            status=HistoryStatus(data.get("status", HistoryStatus.SUCCESS.value)),
            settings=SummarizationSettings.from_mapping(settings if isinstance(settings, Mapping) else {}),
            timestamp=timestamp,
        )


class HistoryStore:
    """Append-and-trim adapter over a durable storage area."""

    def __init__(self, storage: StorageArea, *, limit: int = MAX_HISTORY_ENTRIES) -> None:
        self._storage = storage
        self.limit = limit

    async def append(self, entry: HistoryEntry) -> None:
        raw = await self._read_raw()
        raw.insert(0, entry.to_dict())
        del raw[self.limit:]
        await self._storage.set({HISTORY_KEY: raw})
        logger.debug(
            "history-append",
            extra={"history": {"url": entry.url, "status": entry.status.value, "size": len(raw)}},
        )

    async def list(self) -> List[HistoryEntry]:
        entries: List[HistoryEntry] = []
        for item in await self._read_raw():
            entry = _parse_entry(item)
            if entry is not None:
                entries.append(entry)
        return entries

    async def clear(self) -> None:
        await self._storage.set({HISTORY_KEY: []})

    async def _read_raw(self) -> List[Dict[str, Any]]:
        stored = await self._storage.get([HISTORY_KEY])
        raw = stored.get(HISTORY_KEY)
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]


def _parse_entry(item: Mapping[str, Any]) -> Optional[HistoryEntry]:
    try:
        return HistoryEntry.from_dict(item)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Skipping malformed history entry: %s", exc)
        return None
