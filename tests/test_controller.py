"""Tests for walkpad/controller.py with a fake camera and a fake backend."""
from __future__ import annotations

import asyncio
import io
from datetime import datetime, timezone

import numpy as np
import pytest
from PIL import Image

from walkpad.controller import BUSY_MESSAGE, NO_DATA_MESSAGE, CaptureController
from walkpad.errors import DeviceError, TransportError
from walkpad.history import HistoryStore
from walkpad.status import StatusReporter
from walkpad.storage import JsonKeyValueStore

CAPTURED_AT = datetime(2025, 3, 1, 8, 0, 0, tzinfo=timezone.utc)
TREADMILL_JSON = '{"time":"23:48","speed":"3.0","distance":"1.1"}'


class FakeCamera:
    def __init__(self, fail_open: bool = False) -> None:
        self.fail_open = fail_open
        self.opened = False
        self.released = False
        self.reads = 0

    def open(self) -> None:
        if self.fail_open:
            raise DeviceError("Permission denied")
        self.opened = True

    def read(self) -> np.ndarray:
        self.reads += 1
        return np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self) -> None:
        self.released = True


class FakeApi:
    def __init__(self, answer: str = TREADMILL_JSON, upload_error: Exception | None = None,
                 analyze_error: Exception | None = None, gate: asyncio.Event | None = None) -> None:
        self.answer = answer
        self.upload_error = upload_error
        self.analyze_error = analyze_error
        self.gate = gate
        self.calls: list[str] = []

    async def upload(self, png_bytes: bytes) -> str:
        self.calls.append("upload")
        assert png_bytes.startswith(b"\x89PNG")
        if self.gate is not None:
            await self.gate.wait()
        if self.upload_error:
            raise self.upload_error
        return "http://localhost:8000/captures/capture_20250301_080000.png"

    async def analyze(self, image_url: str) -> str:
        self.calls.append("analyze")
        if self.analyze_error:
            raise self.analyze_error
        return self.answer


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (32, 16), color=(10, 200, 10)).save(buf, format="PNG")
    return buf.getvalue()


def _make(tmp_path, api: FakeApi, camera: FakeCamera | None = None, interval: float = 20.0):
    history = HistoryStore(JsonKeyValueStore(tmp_path / "history.json"))
    history.load()
    reporter = StatusReporter(history)
    camera = camera or FakeCamera()
    controller = CaptureController(
        api, history, reporter,
        camera_factory=lambda: camera,
        interval_seconds=interval,
        clock=lambda: CAPTURED_AT,
    )
    return controller, history, reporter, camera


class TestCameraLifecycle:
    def test_start_and_stop(self, tmp_path):
        async def scenario():
            controller, _, reporter, camera = _make(tmp_path, FakeApi())
            assert await controller.start_camera() is True
            assert controller.session.active
            assert reporter.snapshot.message == "Camera started. Ready to capture."
            controller.stop_camera()
            assert camera.released
            assert not controller.session.active
            assert not controller.session.auto_capture_enabled

        asyncio.run(scenario())

    def test_start_failure_leaves_session_inactive(self, tmp_path):
        async def scenario():
            controller, _, reporter, _ = _make(tmp_path, FakeApi(), FakeCamera(fail_open=True))
            assert await controller.start_camera() is False
            assert not controller.session.active
            assert reporter.snapshot.level == "error"
            assert "Permission denied" in reporter.snapshot.message

        asyncio.run(scenario())

    def test_stop_is_idempotent(self, tmp_path):
        async def scenario():
            controller, _, _, _ = _make(tmp_path, FakeApi())
            controller.stop_camera()
            controller.stop_camera()
            assert not controller.session.active

        asyncio.run(scenario())

    def test_auto_capture_requires_active_camera(self, tmp_path):
        async def scenario():
            controller, _, reporter, _ = _make(tmp_path, FakeApi())
            assert controller.toggle_auto_capture() is False
            assert not controller.session.auto_capture_enabled
            assert reporter.snapshot.level == "error"

        asyncio.run(scenario())

    def test_capture_without_camera_is_noop(self, tmp_path):
        async def scenario():
            api = FakeApi()
            controller, history, _, _ = _make(tmp_path, api)
            assert await controller.capture_frame() is None
            assert api.calls == []
            assert history.total_captures == 0

        asyncio.run(scenario())


class TestCycle:
    def test_successful_capture_is_recorded(self, tmp_path):
        async def scenario():
            api = FakeApi()
            controller, history, reporter, _ = _make(tmp_path, api)
            await controller.start_camera()
            result = await controller.capture_frame()

            assert result.success
            assert api.calls == ["upload", "analyze"]
            assert history.total_captures == 1
            assert history.successful_captures == 1
            entry = history.entries[0]
            assert entry.captured_at == CAPTURED_AT
            assert (entry.time, entry.calories, entry.speed, entry.steps, entry.distance) == \
                ("23:48", "--", "3.0", "--", "1.1")
            assert reporter.snapshot.message == \
                "Captured: Time: 23:48 | Cal: -- | Speed: 3.0 | Steps: -- | Dist: 1.1"
            assert reporter.snapshot.total_captures == 1
            assert reporter.snapshot.success_rate == 100
            assert controller.last_frame_png.startswith(b"\x89PNG")

        asyncio.run(scenario())

    def test_listener_sees_updated_counters_with_outcome(self, tmp_path):
        async def scenario():
            controller, _, reporter, _ = _make(tmp_path, FakeApi())
            await controller.start_camera()
            seen = []
            reporter.subscribe(seen.append)
            await controller.capture_frame()

            captured = [s for s in seen if s.message.startswith("Captured:")]
            assert len(captured) == 1
            assert captured[0].total_captures == 1
            assert captured[0].success_rate == 100
            messages = [s.message for s in seen]
            assert messages.count("Analyzing image...") == 1
            assert messages[-1] == captured[0].message

        asyncio.run(scenario())

    def test_failed_outcome_published_once_with_counters(self, tmp_path):
        async def scenario():
            controller, _, reporter, _ = _make(tmp_path, FakeApi(answer="no json"))
            await controller.start_camera()
            seen = []
            reporter.subscribe(seen.append)
            await controller.capture_frame()

            outcome = [s for s in seen if s.message == NO_DATA_MESSAGE]
            assert len(outcome) == 1
            assert outcome[0].total_captures == 1
            assert outcome[0].success_rate == 0

        asyncio.run(scenario())

    def test_prose_response_counts_as_unsuccessful(self, tmp_path):
        async def scenario():
            api = FakeApi(answer='Sure, here you go: {"calories":"123"}')
            controller, history, reporter, _ = _make(tmp_path, api)
            await controller.start_camera()
            result = await controller.capture_frame()

            assert not result.success
            assert history.total_captures == 1
            assert history.successful_captures == 0
            assert history.entries == []
            assert reporter.snapshot.message == NO_DATA_MESSAGE
            assert reporter.snapshot.success_rate == 0

        asyncio.run(scenario())

    def test_upload_failure_skips_analyze(self, tmp_path):
        async def scenario():
            api = FakeApi(upload_error=TransportError("Storage upload failed: 500 - boom"))
            controller, history, reporter, _ = _make(tmp_path, api)
            await controller.start_camera()
            result = await controller.capture_frame()

            assert not result.success
            assert api.calls == ["upload"]
            assert history.total_captures == 1
            assert history.successful_captures == 0
            assert history.entries == []
            assert reporter.snapshot.level == "error"
            assert "Storage upload failed" in reporter.snapshot.message

        asyncio.run(scenario())

    def test_analyze_failure_is_reported(self, tmp_path):
        async def scenario():
            api = FakeApi(analyze_error=TransportError("Analysis failed: 500 - No response from AI model."))
            controller, history, reporter, _ = _make(tmp_path, api)
            await controller.start_camera()
            await controller.capture_frame()
            assert history.total_captures == 1
            assert history.successful_captures == 0
            assert "Analysis failed" in reporter.snapshot.message

        asyncio.run(scenario())

    def test_unexpected_error_does_not_escape(self, tmp_path):
        async def scenario():
            api = FakeApi(analyze_error=RuntimeError("kaboom"))
            controller, history, reporter, _ = _make(tmp_path, api)
            await controller.start_camera()
            result = await controller.capture_frame()
            assert not result.success
            assert history.total_captures == 1
            assert not controller.busy
            assert reporter.snapshot.message == "Error: kaboom"

        asyncio.run(scenario())

    def test_manual_upload_runs_same_cycle(self, tmp_path):
        async def scenario():
            api = FakeApi(answer='{"calories": "1234", "speed": "5.6", "steps": "2345"}')
            controller, history, _, _ = _make(tmp_path, api)
            result = await controller.handle_manual_upload(_png_bytes())
            assert result.success
            assert api.calls == ["upload", "analyze"]
            assert history.entries[0].steps == "2345"
            assert history.entries[0].time == "--"

        asyncio.run(scenario())

    def test_manual_upload_of_garbage_is_not_counted(self, tmp_path):
        async def scenario():
            api = FakeApi()
            controller, history, reporter, _ = _make(tmp_path, api)
            assert await controller.handle_manual_upload(b"definitely not an image") is None
            assert api.calls == []
            assert history.total_captures == 0
            assert reporter.snapshot.level == "error"

        asyncio.run(scenario())


class TestSerialization:
    def test_overlapping_trigger_is_dropped(self, tmp_path):
        async def scenario():
            gate = asyncio.Event()
            api = FakeApi(gate=gate)
            controller, history, reporter, _ = _make(tmp_path, api)
            await controller.start_camera()

            first = asyncio.create_task(controller.capture_frame())
            await asyncio.sleep(0.05)
            assert controller.busy
            assert await controller.capture_frame() is None
            assert await controller.handle_manual_upload(_png_bytes()) is None

            gate.set()
            result = await first
            assert result.success
            assert history.total_captures == 1
            assert api.calls == ["upload", "analyze"]

        asyncio.run(scenario())

    def test_busy_message_reported_for_manual_retrigger(self, tmp_path):
        async def scenario():
            gate = asyncio.Event()
            controller, _, reporter, _ = _make(tmp_path, FakeApi(gate=gate))
            await controller.start_camera()
            first = asyncio.create_task(controller.capture_frame())
            await asyncio.sleep(0.05)
            await controller.capture_frame()
            assert reporter.snapshot.message == BUSY_MESSAGE
            gate.set()
            await first

        asyncio.run(scenario())


class TestAutoCapture:
    def test_enabling_captures_immediately_and_repeats(self, tmp_path):
        async def scenario():
            api = FakeApi()
            controller, history, _, _ = _make(tmp_path, api, interval=0.05)
            await controller.start_camera()
            assert controller.toggle_auto_capture() is True
            await asyncio.sleep(0.01)
            await controller.wait_idle()
            assert history.total_captures >= 1

            await asyncio.sleep(0.2)
            assert controller.toggle_auto_capture() is False
            await controller.wait_idle()
            total = history.total_captures
            assert total >= 3

            await asyncio.sleep(0.2)
            assert history.total_captures == total
            controller.stop_camera()

        asyncio.run(scenario())

    def test_disabling_lets_in_flight_cycle_finish(self, tmp_path):
        async def scenario():
            gate = asyncio.Event()
            api = FakeApi(gate=gate)
            controller, history, _, _ = _make(tmp_path, api, interval=60)
            await controller.start_camera()
            controller.toggle_auto_capture()
            await asyncio.sleep(0.05)
            assert controller.busy

            controller.toggle_auto_capture()
            assert not controller.session.auto_capture_enabled
            gate.set()
            await controller.wait_idle()

            assert history.total_captures == 1
            assert history.successful_captures == 1
            assert len(history.entries) == 1

        asyncio.run(scenario())

    def test_stop_camera_cancels_schedule_but_not_cycle(self, tmp_path):
        async def scenario():
            gate = asyncio.Event()
            api = FakeApi(gate=gate)
            controller, history, _, camera = _make(tmp_path, api, interval=0.05)
            await controller.start_camera()
            controller.toggle_auto_capture()
            await asyncio.sleep(0.02)

            controller.stop_camera()
            assert not controller.session.active
            assert not controller.session.auto_capture_enabled
            assert camera.released

            gate.set()
            await controller.wait_idle()
            await asyncio.sleep(0.15)
            assert history.total_captures == 1
            assert camera.reads == 1

        asyncio.run(scenario())

    def test_failed_cycles_do_not_stop_schedule(self, tmp_path):
        async def scenario():
            api = FakeApi(upload_error=TransportError("network down"))
            controller, history, _, _ = _make(tmp_path, api, interval=0.05)
            await controller.start_camera()
            controller.toggle_auto_capture()
            await asyncio.sleep(0.18)
            assert controller.session.auto_capture_enabled
            controller.stop_camera()
            await controller.wait_idle()
            assert history.total_captures >= 2
            assert history.successful_captures == 0

        asyncio.run(scenario())


class TestClearHistory:
    def test_clear_resets_history_and_status(self, tmp_path):
        async def scenario():
            controller, history, reporter, _ = _make(tmp_path, FakeApi())
            await controller.handle_manual_upload(_png_bytes())
            assert history.total_captures == 1

            controller.clear_history()
            assert history.entries == []
            assert history.total_captures == 0
            assert history.successful_captures == 0
            assert reporter.snapshot.last_reading == "--"
            assert reporter.snapshot.last_update == "Waiting for data..."
            assert reporter.snapshot.message == "History cleared."

            reloaded = HistoryStore(JsonKeyValueStore(tmp_path / "history.json"))
            reloaded.load()
            assert reloaded.total_captures == 0

        asyncio.run(scenario())


def test_close_releases_camera(tmp_path):
    async def scenario():
        controller, _, _, camera = _make(tmp_path, FakeApi())
        await controller.start_camera()
        await controller.close()
        assert camera.released
        assert not controller.session.active

    asyncio.run(scenario())


@pytest.mark.parametrize("answer, successes", [
    (TREADMILL_JSON, 3),
    ("no json", 0),
])
def test_counters_invariant_over_many_cycles(tmp_path, answer, successes):
    async def scenario():
        controller, history, _, _ = _make(tmp_path, FakeApi(answer=answer))
        await controller.start_camera()
        for _ in range(3):
            await controller.capture_frame()
            assert history.total_captures >= history.successful_captures
        assert history.total_captures == 3
        assert history.successful_captures == successes

    asyncio.run(scenario())
