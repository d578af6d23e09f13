"""Camera lifecycle, recurring capture and the capture cycle itself.

A capture cycle is snapshot -> upload -> analyze -> parse -> record -> report,
each step strictly after the previous one. Timer ticks and user actions all go
through one busy flag, so at most one cycle runs at a time and the history
counters are only ever touched by one cycle.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import numpy as np

from walkpad.api_client import ApiClient
from walkpad.camera import Camera
from walkpad.errors import DeviceError, TransportError
from walkpad.frames import decode_image, encode_png
from walkpad.history import CapturedReading, HistoryStore
from walkpad.parser import parse_response
from walkpad.status import StatusReporter

logger = logging.getLogger(__name__)

CAPTURE_INTERVAL_SECONDS = 20.0
NO_DATA_MESSAGE = "No data detected in image."
BUSY_MESSAGE = "A capture is already in progress."


def _now() -> datetime:
    moment = datetime.now(timezone.utc)
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000)


@dataclass
class CameraSession:
    active: bool = False
    auto_capture_enabled: bool = False


@dataclass(frozen=True)
class CycleResult:
    success: bool
    message: str
    reading: Optional[CapturedReading] = None


class CaptureController:
    def __init__(
        self,
        api: ApiClient,
        history: HistoryStore,
        reporter: StatusReporter,
        camera_factory: Callable[[], Camera] | None = None,
        interval_seconds: float = CAPTURE_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._api = api
        self._history = history
        self._reporter = reporter
        self._camera_factory = camera_factory
        self._interval = interval_seconds
        self._clock = clock

        self.session = CameraSession()
        self.last_frame_png: bytes | None = None
        self._camera: Camera | None = None
        self._auto_task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._busy = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def busy(self) -> bool:
        return self._busy

    # ------------------------------------------------------------------
    # Camera lifecycle
    # ------------------------------------------------------------------

    async def start_camera(self) -> bool:
        if self.session.active:
            return True
        if self._camera_factory is None:
            self._reporter.update("Error: no camera configured.", "error")
            return False

        self._reporter.update("Starting camera...", "info")
        camera = self._camera_factory()
        try:
            await asyncio.to_thread(camera.open)
        except DeviceError as exc:
            self._reporter.update(f"Error: {exc}", "error")
            return False

        self._camera = camera
        self.session.active = True
        self._reporter.update("Camera started. Ready to capture.", "success")
        return True

    def stop_camera(self) -> None:
        """Release the camera and cancel the schedule; a running cycle still finishes."""
        self._cancel_auto_capture()
        self.session.auto_capture_enabled = False
        camera, self._camera = self._camera, None
        if camera is not None:
            camera.release()
        self.session.active = False
        self._reporter.update("Camera stopped.", "info")

    def toggle_auto_capture(self) -> bool:
        """Flip auto-capture; must be called from within the running event loop."""
        if not self.session.active:
            self._reporter.update("Error: start the camera before enabling auto-capture.", "error")
            return False

        self.session.auto_capture_enabled = not self.session.auto_capture_enabled
        if self.session.auto_capture_enabled:
            self._reporter.update(
                f"Auto-capture enabled. Capturing every {self._interval:g} seconds.", "success"
            )
            self._auto_task = asyncio.get_running_loop().create_task(self._auto_capture_loop())
        else:
            self._cancel_auto_capture()
            self._reporter.update("Auto-capture disabled.", "info")
        return self.session.auto_capture_enabled

    def _cancel_auto_capture(self) -> None:
        task, self._auto_task = self._auto_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _auto_capture_loop(self) -> None:
        # Fixed cadence: ticks do not wait for the previous cycle to finish.
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while self.session.auto_capture_enabled:
            self._trigger_capture()
            next_tick += self._interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    def _trigger_capture(self) -> None:
        if self._busy:
            logger.info("Scheduled capture skipped: previous cycle still running")
            return
        task = asyncio.get_running_loop().create_task(self.capture_frame())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Capture entry points
    # ------------------------------------------------------------------

    async def capture_frame(self) -> CycleResult | None:
        """Snapshot the live camera and run one cycle. No-op without a camera."""
        camera = self._camera
        if camera is None or not self.session.active:
            return None
        if not self._acquire():
            return None
        try:
            self._reporter.update("Capturing frame...", "processing")
            captured_at = self._clock()
            try:
                frame = await asyncio.to_thread(camera.read)
            except DeviceError as exc:
                self._reporter.update(f"Error: {exc}", "error")
                return None
            return await self._run_cycle(frame, captured_at)
        finally:
            self._release()

    async def handle_manual_upload(self, image_bytes: bytes) -> CycleResult | None:
        """Run one cycle on a user-supplied image file instead of the camera."""
        if not self._acquire():
            return None
        try:
            self._reporter.update("Loading uploaded image...", "processing")
            captured_at = self._clock()
            try:
                frame = await asyncio.to_thread(decode_image, image_bytes)
            except ValueError as exc:
                self._reporter.update(f"Error: {exc}", "error")
                return None
            return await self._run_cycle(frame, captured_at)
        finally:
            self._release()

    def clear_history(self) -> None:
        """Wipe history and counters. Callers confirm with the user first."""
        self._history.clear()
        self._reporter.reset()

    async def wait_idle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self._idle.wait()

    async def close(self) -> None:
        """Session teardown: release the camera, then let a running cycle land."""
        if self.session.active:
            self.stop_camera()
        await self.wait_idle()

    def _acquire(self) -> bool:
        if self._busy:
            logger.info("Capture skipped: previous cycle still running")
            self._reporter.update(BUSY_MESSAGE, "info")
            return False
        self._busy = True
        self._idle.clear()
        return True

    def _release(self) -> None:
        self._busy = False
        self._idle.set()

    # ------------------------------------------------------------------
    # The cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self, frame: np.ndarray, captured_at: datetime) -> CycleResult:
        reading: CapturedReading | None = None
        try:
            png = await asyncio.to_thread(encode_png, frame)
            self.last_frame_png = png

            self._reporter.update("Uploading image...", "processing")
            image_url = await self._api.upload(png)

            self._reporter.update("Analyzing image...", "processing")
            raw = await self._api.analyze(image_url)

            parsed = parse_response(raw)
            if parsed is None:
                logger.info("Unparseable model response: %.200s", raw)
                result = CycleResult(success=False, message=NO_DATA_MESSAGE)
            else:
                reading = CapturedReading.from_parsed(parsed, captured_at)
                result = CycleResult(success=True, message=f"Captured: {reading.formatted}", reading=reading)
        except TransportError as exc:
            result = CycleResult(success=False, message=f"Error: {exc}")
        except Exception as exc:
            logger.exception("Capture cycle failed")
            result = CycleResult(success=False, message=f"Error: {exc}")

        self._history.record_cycle(reading)
        if reading is not None:
            self._reporter.reading_captured(reading)
        else:
            self._reporter.update(result.message, "error")
        return result
