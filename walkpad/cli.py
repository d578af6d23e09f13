"""Command-line capture client for the walking pad display."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from walkpad.api_client import ApiClient
from walkpad.camera import Camera
from walkpad.config import ClientSettings, configure_logging, load_client_settings
from walkpad.controller import CaptureController
from walkpad.history import HistoryStore
from walkpad.parser import FIELDS
from walkpad.status import StatusReporter, StatusSnapshot
from walkpad.storage import JsonKeyValueStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Photograph a walking pad display and log its readings.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("watch", help="Start the camera and capture every interval until Ctrl+C.")
    sub.add_parser("snap", help="Capture and analyze a single camera frame.")

    up = sub.add_parser("upload", help="Analyze an image file instead of the camera.")
    up.add_argument("image", type=Path)

    hist = sub.add_parser("history", help="Show recorded readings.")
    hist.add_argument("--limit", type=int, default=20)

    clr = sub.add_parser("clear", help="Delete all history and counters.")
    clr.add_argument("--yes", action="store_true", help="Skip the confirmation prompt.")

    return p.parse_args(argv)


def load_history(settings: ClientSettings) -> HistoryStore:
    history = HistoryStore(JsonKeyValueStore(settings.history_path))
    history.load()
    return history


def _print_status(snapshot: StatusSnapshot) -> None:
    if snapshot.message:
        print(f"[{snapshot.level}] {snapshot.message}  (captures: {snapshot.total_captures}, "
              f"success: {snapshot.success_rate}%)")


def history_frame(history: HistoryStore, limit: int | None = None) -> pd.DataFrame:
    entries = history.entries if limit is None else history.entries[:limit]
    rows = [
        {"captured_at": e.captured_at.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
         **{name: getattr(e, name) for name in FIELDS}}
        for e in entries
    ]
    return pd.DataFrame(rows, columns=["captured_at", *FIELDS])


async def _run_capture(settings: ClientSettings, history: HistoryStore, command: str,
                       image: Path | None = None) -> int:
    reporter = StatusReporter(history)
    reporter.subscribe(_print_status)

    def camera_factory() -> Camera:
        return Camera(settings.camera_source, settings.camera_width, settings.camera_height)

    async with ApiClient(settings.api_base_url) as api:
        controller = CaptureController(
            api, history, reporter,
            camera_factory=camera_factory,
            interval_seconds=settings.capture_interval_seconds,
        )
        try:
            if command == "upload":
                result = await controller.handle_manual_upload(image.read_bytes())
                return 0 if result is not None and result.success else 1

            if not await controller.start_camera():
                return 1

            if command == "snap":
                result = await controller.capture_frame()
                return 0 if result is not None and result.success else 1

            controller.toggle_auto_capture()
            # Runs until Ctrl+C cancels this task; close() below still releases the camera.
            await asyncio.Event().wait()
            return 0
        finally:
            await controller.close()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    configure_logging()
    args = parse_args(argv)
    settings = load_client_settings()
    history = load_history(settings)

    if args.command == "history":
        df = history_frame(history, args.limit)
        if df.empty:
            print("No history yet.")
        else:
            print(df.to_string(index=False))
        print(f"\nTotal captures: {history.total_captures}  Success rate: {history.success_rate}%")
        return 0

    if args.command == "clear":
        if not args.yes:
            answer = input("Are you sure you want to clear all history? [y/N] ").strip().lower()
            if answer not in ("y", "yes"):
                print("Aborted.")
                return 1
        history.clear()
        print("History cleared.")
        return 0

    if args.command == "upload" and not args.image.exists():
        print(f"Image not found: {args.image}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(_run_capture(settings, history, args.command, getattr(args, "image", None)))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
