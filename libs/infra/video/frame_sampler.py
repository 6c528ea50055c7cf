"""Frame sampling from video files with OpenCV."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import cv2
import numpy as np

from libs.core.domain.errors import FrameSourceError

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 80


@dataclass(frozen=True)
class FrameIntervalPolicy:
    """Every ``step``-th frame of ``total_frames`` at a nominal frame rate."""

    step: int = 10
    total_frames: int | None = 100
    nominal_fps: float = 30.0


@dataclass(frozen=True)
class WallClockPolicy:
    """Fixed wall-clock sampling period for live sources."""

    interval_ms: int = 500

    @property
    def interval_sec(self) -> float:
        return self.interval_ms / 1000


def sample_indices(policy: FrameIntervalPolicy, frame_count: int) -> list[int]:
    total = policy.total_frames if policy.total_frames is not None else frame_count
    step = max(1, policy.step)
    return list(range(0, max(0, total), step))


def encode_jpeg(frame: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("frame could not be encoded as JPEG")
    return buffer.tobytes()


def count_samples(path: str | Path, policy: FrameIntervalPolicy) -> int:
    if policy.total_frames is not None:
        return len(sample_indices(policy, policy.total_frames))
    capture = _open(path)
    try:
        frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
    finally:
        capture.release()
    return len(sample_indices(policy, frame_count))


def sample_video(
    path: str | Path,
    policy: FrameIntervalPolicy = FrameIntervalPolicy(),
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> Iterator[tuple[int, bytes]]:
    """Yield ``(frame_index, jpeg_bytes)`` for each sampled frame.

    Seeks by time, ``frame_index / nominal_fps`` seconds, so indexes are
    approximate for variable frame rate sources. Frames that fail to decode
    are skipped.
    """
    capture = _open(path)
    try:
        frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        for frame_index in sample_indices(policy, frame_count):
            position_ms = frame_index / policy.nominal_fps * 1000
            capture.set(cv2.CAP_PROP_POS_MSEC, position_ms)
            ok, frame = capture.read()
            if not ok or frame is None:
                logger.warning("could not decode frame %s of %s", frame_index, path)
                continue
            yield frame_index, encode_jpeg(frame, jpeg_quality)
    finally:
        capture.release()


def _open(path: str | Path) -> cv2.VideoCapture:
    capture = cv2.VideoCapture(str(path))
    if not capture.isOpened():
        capture.release()
        raise FrameSourceError(f"could not open video: {path}")
    return capture
