"""User-facing status line and capture statistics."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable

from walkpad.history import CapturedReading, HistoryStore
from walkpad.parser import SENTINEL

logger = logging.getLogger(__name__)

LEVELS = ("info", "success", "error", "processing")
WAITING_FOR_DATA = "Waiting for data..."

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "processing": logging.DEBUG,
    "error": logging.WARNING,
}


@dataclass(frozen=True)
class StatusSnapshot:
    message: str = ""
    level: str = "info"
    total_captures: int = 0
    success_rate: int = 0
    last_reading: str = SENTINEL
    last_update: str = WAITING_FOR_DATA


class StatusReporter:
    def __init__(self, history: HistoryStore) -> None:
        self._history = history
        self._listeners: list[Callable[[StatusSnapshot], None]] = []
        self.snapshot = self._with_stats(StatusSnapshot())

    def subscribe(self, listener: Callable[[StatusSnapshot], None]) -> None:
        self._listeners.append(listener)

    def update(self, message: str, level: str = "info") -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown status level: {level}")
        logger.log(_LOG_LEVELS[level], message)
        self._publish(replace(self.snapshot, message=message, level=level))

    def reading_captured(self, reading: CapturedReading) -> None:
        stamp = reading.captured_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        message = f"Captured: {reading.formatted}"
        logger.info(message)
        self._publish(replace(
            self.snapshot,
            message=message,
            level="success",
            last_reading=reading.formatted,
            last_update=f"Last update: {stamp}",
        ))

    def refresh_stats(self) -> None:
        self._publish(self.snapshot)

    def reset(self) -> None:
        """Back to the initial display after the history was cleared."""
        self.snapshot = StatusSnapshot()
        self.update("History cleared.", "info")

    def _with_stats(self, snapshot: StatusSnapshot) -> StatusSnapshot:
        return replace(
            snapshot,
            total_captures=self._history.total_captures,
            success_rate=self._history.success_rate,
        )

    def _publish(self, snapshot: StatusSnapshot) -> None:
        """Every published snapshot carries the current history counters."""
        snapshot = self._with_stats(snapshot)
        self.snapshot = snapshot
        for listener in self._listeners:
            listener(snapshot)
