"""Camera-driven analysis loop with automatic stop when nobody is in view."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from libs.core.application.contracts import CameraDevice
from libs.core.application.session_service import ComplianceSession
from libs.core.domain.errors import (
    CameraAcquisitionError,
    DetectionServiceError,
    InvalidSessionStateError,
)

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_CAMERA_READY = "camera_ready"
STATE_ANALYZING = "analyzing"

DEFAULT_INTERVAL_SEC = 0.5
DEFAULT_MAX_MISSED_FRAMES = 5
DEFAULT_PRESENCE_THRESHOLD = 0.6


@dataclass
class LiveSessionStatus:
    """Snapshot of the live controller."""

    state: str
    missed_frames: int
    cycles_completed: int
    last_frame: int | None
    last_error: str | None


class LiveSessionController:
    """Drives sampler, detectors and reconciler on a timer for one camera."""

    def __init__(
        self,
        session: ComplianceSession,
        camera: CameraDevice,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        max_missed_frames: int = DEFAULT_MAX_MISSED_FRAMES,
        presence_threshold: float = DEFAULT_PRESENCE_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session
        self._camera = camera
        self._interval_sec = interval_sec
        self._max_missed_frames = max_missed_frames
        self._presence_threshold = presence_threshold
        self._clock = clock

        self._lock = threading.Lock()
        self._state = STATE_IDLE
        self._generation = 0
        self._stop_event: threading.Event | None = None
        self._missed_frames = 0
        self._cycles_completed = 0
        self._last_frame: int | None = None
        self._last_error: str | None = None

    def __enter__(self) -> "LiveSessionController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    def status(self) -> LiveSessionStatus:
        with self._lock:
            return LiveSessionStatus(
                state=self._state,
                missed_frames=self._missed_frames,
                cycles_completed=self._cycles_completed,
                last_frame=self._last_frame,
                last_error=self._last_error,
            )

    def start_camera(self) -> None:
        with self._lock:
            if self._state != STATE_IDLE:
                return
            try:
                self._camera.open()
            except CameraAcquisitionError as error:
                self._last_error = str(error)
                logger.warning("camera unavailable: %s", error)
                raise
            self._state = STATE_CAMERA_READY
            self._last_error = None
        logger.info("camera ready")

    def start_analysis(self) -> None:
        with self._lock:
            if self._state != STATE_CAMERA_READY:
                raise InvalidSessionStateError(
                    f"cannot start analysis from state {self._state}"
                )
            self._state = STATE_ANALYZING
            self._generation += 1
            self._missed_frames = 0
            stop_event = threading.Event()
            self._stop_event = stop_event
            generation = self._generation

        thread = threading.Thread(
            target=self._run_timer,
            args=(stop_event, generation),
            daemon=True,
        )
        thread.start()
        logger.info("live analysis started")

    def stop_analysis(self) -> None:
        with self._lock:
            self._stop_locked()

    def teardown(self) -> None:
        with self._lock:
            self._stop_locked()
            if self._state == STATE_IDLE:
                return
            self._camera.release()
            self._state = STATE_IDLE
        logger.info("camera released")

    def tick(self) -> None:
        """Run one sample-detect-reconcile cycle.

        A cycle without a person-detector answer is skipped: it is not
        counted towards the missed-frame limit. Results are only stored
        while the run that requested them is still analyzing.
        """
        with self._lock:
            if self._state != STATE_ANALYZING:
                return
            generation = self._generation

        frame = int(self._clock() * 1000)
        try:
            image_bytes = self._camera.read_frame()
            pair = self._session.detect(image_bytes)
        except (CameraAcquisitionError, DetectionServiceError) as error:
            logger.warning("live cycle skipped: %s", error)
            with self._lock:
                self._last_error = str(error)
            return

        with self._lock:
            if self._state != STATE_ANALYZING or self._generation != generation:
                logger.debug("discarding late result for frame %s", frame)
                return
            person_failure = pair.person_failure
            if person_failure is not None:
                logger.warning("live cycle skipped: %s", person_failure)
                self._last_error = str(person_failure)
                return

            self._session.ingest_detections(frame=frame, pair=pair)
            person_present = any(
                item.score >= self._presence_threshold for item in pair.persons
            )
            self._cycles_completed += 1
            self._last_frame = frame
            if person_present:
                self._missed_frames = 0
            else:
                self._missed_frames += 1
            if self._missed_frames >= self._max_missed_frames:
                logger.info(
                    "no person for %s samples, stopping analysis",
                    self._missed_frames,
                )
                self._stop_locked()

    def _stop_locked(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None
        if self._state == STATE_ANALYZING:
            self._state = STATE_CAMERA_READY
            self._generation += 1

    def _run_timer(self, stop_event: threading.Event, generation: int) -> None:
        # cycles run on this thread, a slow one delays the next instead of overlapping
        delay = self._interval_sec
        while not stop_event.wait(delay):
            with self._lock:
                if self._generation != generation:
                    return
            started = time.monotonic()
            try:
                self.tick()
            except Exception:
                logger.exception("live cycle failed")
            delay = max(0.0, self._interval_sec - (time.monotonic() - started))
