from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

CAPTURES_ROUTE = "/captures"


@dataclass(frozen=True)
class StoredImage:
    filename: str
    url: str


def capture_filename(moment: datetime) -> str:
    return f"capture_{moment.astimezone(timezone.utc):%Y%m%d_%H%M%S}.png"


class LocalImageStore:
    """Stores uploaded PNGs in a directory the backend serves under /captures.

    Names only carry second resolution, so two uploads within the same second
    share a name and the later one wins.
    """

    def __init__(
        self,
        root: Path,
        public_base_url: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self._clock = clock

    def save(self, data: bytes) -> StoredImage:
        filename = capture_filename(self._clock())
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / filename).write_bytes(data)
        logger.info("Stored %s (%.1f KB)", filename, len(data) / 1024.0)
        return StoredImage(filename=filename, url=f"{self.public_base_url}{CAPTURES_ROUTE}/{filename}")
