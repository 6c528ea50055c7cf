from __future__ import annotations

import logging
import threading

import cv2

from libs.core.domain.errors import CameraAcquisitionError
from libs.infra.video.frame_sampler import DEFAULT_JPEG_QUALITY, encode_jpeg

logger = logging.getLogger(__name__)


class OpenCvCamera:
    """Local capture device read one JPEG frame at a time."""

    def __init__(
        self,
        index: int = 0,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self._index = index
        self._jpeg_quality = jpeg_quality
        self._capture: cv2.VideoCapture | None = None
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            if self._capture is not None:
                return
            capture = cv2.VideoCapture(self._index)
            if not capture.isOpened():
                capture.release()
                raise CameraAcquisitionError(f"camera {self._index} is not available")
            self._capture = capture
        logger.info("opened camera %s", self._index)

    def read_frame(self) -> bytes:
        with self._lock:
            if self._capture is None:
                raise CameraAcquisitionError("camera is not open")
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraAcquisitionError("camera returned no frame")
        return encode_jpeg(frame, self._jpeg_quality)

    def release(self) -> None:
        with self._lock:
            if self._capture is None:
                return
            self._capture.release()
            self._capture = None
        logger.info("released camera %s", self._index)
