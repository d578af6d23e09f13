"""OpenCV camera handle used by the capture controller."""
from __future__ import annotations

import logging
import threading

import cv2
import numpy as np

from walkpad.errors import DeviceError

logger = logging.getLogger(__name__)


class Camera:
    """A single video source opened at a preferred resolution.

    The device negotiates the requested size down when it cannot deliver it;
    `resolution` reports what was actually granted. `read` and `release` are
    called from worker threads, so both hold the same lock.
    """

    def __init__(self, source: int | str = 0, width: int = 1920, height: int = 1080) -> None:
        self.source = source
        self.width = width
        self.height = height
        self._cap: cv2.VideoCapture | None = None
        self._lock = threading.Lock()

    @property
    def resolution(self) -> tuple[int, int]:
        if self._cap is None:
            return (0, 0)
        return (
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    def open(self) -> None:
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            cap.release()
            raise DeviceError(f"Could not open camera {self.source!r} (missing device or permission denied)")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        with self._lock:
            self._cap = cap
        logger.info("Camera %r opened at %dx%d", self.source, *self.resolution)

    def read(self) -> np.ndarray:
        with self._lock:
            if self._cap is None:
                raise DeviceError("Camera is not open")
            ok, frame = self._cap.read()
        if not ok or frame is None:
            raise DeviceError("Could not read a frame from the camera")
        return frame

    def release(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.info("Camera %r released", self.source)
