"""Bounded, persisted log of captured readings plus running counters."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from walkpad.errors import PersistenceError
from walkpad.parser import FIELDS, SENTINEL, ParsedReading
from walkpad.storage import JsonKeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "walkingPadHistory"
STATS_KEY = "walkingPadStats"
MAX_ENTRIES = 100


@dataclass(frozen=True)
class CapturedReading:
    captured_at: datetime
    time: str = SENTINEL
    calories: str = SENTINEL
    speed: str = SENTINEL
    steps: str = SENTINEL
    distance: str = SENTINEL

    @classmethod
    def from_parsed(cls, parsed: ParsedReading, captured_at: datetime) -> CapturedReading:
        return cls(captured_at=captured_at, **parsed.as_dict())

    @property
    def formatted(self) -> str:
        return ParsedReading(**{name: getattr(self, name) for name in FIELDS}).formatted

    def to_json(self) -> dict:
        return {
            "timestamp": round(self.captured_at.timestamp() * 1000),
            **{name: getattr(self, name) for name in FIELDS},
        }

    @classmethod
    def from_json(cls, raw: dict) -> CapturedReading:
        millis = int(raw["timestamp"])
        captured_at = datetime.fromtimestamp(millis // 1000, tz=timezone.utc) + timedelta(milliseconds=millis % 1000)
        return cls(
            captured_at=captured_at,
            **{name: str(raw.get(name) or SENTINEL) for name in FIELDS},
        )


class HistoryStore:
    """Newest-first history capped at MAX_ENTRIES, persisted after every change.

    Storage failures never surface: the session keeps working in memory.
    """

    def __init__(self, storage: JsonKeyValueStore, max_entries: int = MAX_ENTRIES) -> None:
        self._storage = storage
        self._max_entries = max_entries
        self.entries: list[CapturedReading] = []
        self.total_captures = 0
        self.successful_captures = 0

    @property
    def success_rate(self) -> int:
        return success_rate(self.total_captures, self.successful_captures)

    def load(self) -> None:
        """Restore persisted state; absent or corrupt data yields an empty session."""
        try:
            raw_history = self._storage.get(HISTORY_KEY)
            raw_stats = self._storage.get(STATS_KEY)
            entries = [CapturedReading.from_json(e) for e in json.loads(raw_history)] if raw_history else []
            stats = json.loads(raw_stats) if raw_stats else {}
            total = int(stats.get("totalCaptures") or 0)
            successful = int(stats.get("successfulCaptures") or 0)
        except (ValueError, TypeError, KeyError, AttributeError, OverflowError, OSError) as exc:
            logger.warning("Discarding corrupt history: %s", exc)
            entries, total, successful = [], 0, 0

        self.entries = entries[: self._max_entries]
        self.total_captures = max(0, total)
        self.successful_captures = max(0, min(successful, self.total_captures))

    def append(self, reading: CapturedReading) -> None:
        self.entries.insert(0, reading)
        del self.entries[self._max_entries:]
        self._save()

    def record_cycle(self, reading: CapturedReading | None) -> None:
        """Count one attempted cycle; a reading marks it successful."""
        self.total_captures += 1
        if reading is None:
            self._save()
            return
        self.successful_captures += 1
        self.append(reading)

    def clear(self) -> None:
        """Drop every entry and counter. Callers confirm with the user first."""
        self.entries = []
        self.total_captures = 0
        self.successful_captures = 0
        try:
            self._storage.remove(HISTORY_KEY)
            self._storage.remove(STATS_KEY)
        except PersistenceError as exc:
            logger.debug("History clear not persisted: %s", exc)

    def _save(self) -> None:
        try:
            self._storage.set(HISTORY_KEY, json.dumps([e.to_json() for e in self.entries]))
            self._storage.set(
                STATS_KEY,
                json.dumps({
                    "totalCaptures": self.total_captures,
                    "successfulCaptures": self.successful_captures,
                }),
            )
        except PersistenceError as exc:
            logger.debug("History not persisted: %s", exc)


def success_rate(total: int, successful: int) -> int:
    """Whole-number percentage, halves rounded up; 0 before any capture."""
    if total <= 0:
        return 0
    return int(successful * 100 / total + 0.5)
