from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ServerSettings:
    openai_api_key: str
    openai_model: str
    openai_timeout_seconds: int
    azure_openai_endpoint: str | None
    azure_openai_api_version: str
    capture_dir: Path
    public_base_url: str
    langfuse_public_key: str | None
    langfuse_secret_key: str | None
    langfuse_host: str | None


@dataclass(frozen=True)
class ClientSettings:
    api_base_url: str
    history_path: Path
    capture_interval_seconds: float
    camera_source: int | str
    camera_width: int
    camera_height: int


def load_server_settings() -> ServerSettings:
    openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not openai_api_key:
        raise RuntimeError("OPENAI_API_KEY is required (set it in your environment or .env).")

    return ServerSettings(
        openai_api_key=openai_api_key,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        openai_timeout_seconds=int(os.getenv("OPENAI_TIMEOUT_SECONDS", "60")),
        azure_openai_endpoint=os.getenv("AZURE_OPENAI_ENDPOINT") or None,
        azure_openai_api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-10-21"),
        capture_dir=Path(os.getenv("WALKPAD_CAPTURE_DIR", "data/captures")),
        public_base_url=os.getenv("WALKPAD_PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        langfuse_public_key=os.getenv("LANGFUSE_PUBLIC_KEY"),
        langfuse_secret_key=os.getenv("LANGFUSE_SECRET_KEY"),
        langfuse_host=os.getenv("LANGFUSE_HOST"),
    )


def load_client_settings() -> ClientSettings:
    return ClientSettings(
        api_base_url=os.getenv("WALKPAD_API_BASE_URL", "http://localhost:8000").rstrip("/"),
        history_path=Path(os.getenv("WALKPAD_HISTORY_PATH", "data/history.json")),
        capture_interval_seconds=float(os.getenv("WALKPAD_CAPTURE_INTERVAL_SECONDS", "20")),
        camera_source=parse_camera_source(os.getenv("WALKPAD_CAMERA_SOURCE", "0")),
        camera_width=int(os.getenv("WALKPAD_CAMERA_WIDTH", "1920")),
        camera_height=int(os.getenv("WALKPAD_CAMERA_HEIGHT", "1080")),
    )


def parse_camera_source(raw: str) -> int | str:
    """Device index for digit strings, otherwise a stream URL or file path."""
    raw = raw.strip()
    return int(raw) if raw.isdigit() else raw


def configure_logging() -> None:
    level = os.getenv("WALKPAD_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
