from pathlib import Path

import cv2
import numpy as np
import pytest

CLIP_FRAMES = 40
CLIP_FPS = 30.0


@pytest.fixture
def video_clip(tmp_path: Path) -> Path:
    """Short MJPG clip whose frame ``i`` is a flat gray of level ``6 * i``."""
    path = tmp_path / "clip.avi"
    writer = cv2.VideoWriter(
        str(path), cv2.VideoWriter_fourcc(*"MJPG"), CLIP_FPS, (64, 48)
    )
    if not writer.isOpened():
        pytest.skip("MJPG video writer is not available")
    try:
        for index in range(CLIP_FRAMES):
            writer.write(np.full((48, 64, 3), 6 * index, dtype=np.uint8))
    finally:
        writer.release()
    return path
