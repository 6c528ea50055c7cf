"""Background batch analysis of an uploaded video."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from uuid import uuid4

from libs.core.application.session_service import ComplianceSession
from libs.core.domain.errors import DetectionServiceError, FrameSourceError
from libs.infra.video.frame_sampler import (
    FrameIntervalPolicy,
    count_samples,
    sample_video,
)

logger = logging.getLogger(__name__)


@dataclass
class AnalysisState:
    """Current state of a batch analysis run."""

    run_id: str
    video_path: str
    running: bool
    processed_samples: int
    total_samples: int
    last_frame: int | None
    error: str | None

    @property
    def progress(self) -> float:
        if self.total_samples <= 0:
            return 100.0 if not self.running else 0.0
        rate = self.processed_samples / self.total_samples * 100
        return round(min(100.0, rate), 1)


@dataclass
class AnalysisConfig:
    """Configuration for one batch run."""

    video_path: Path
    policy: FrameIntervalPolicy
    jpeg_quality: int


class _Registry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, AnalysisState] = {}
        self._latest: str | None = None

    def get(self, run_id: str) -> AnalysisState | None:
        with self._lock:
            state = self._states.get(run_id)
            if state is None:
                return None
            return AnalysisState(**asdict(state))

    def latest(self) -> AnalysisState | None:
        with self._lock:
            run_id = self._latest
        return self.get(run_id) if run_id is not None else None

    def set(self, state: AnalysisState) -> None:
        with self._lock:
            self._states[state.run_id] = state
            self._latest = state.run_id

    def claim(self, state: AnalysisState) -> bool:
        with self._lock:
            if any(item.running for item in self._states.values()):
                return False
            self._states[state.run_id] = state
            self._latest = state.run_id
            return True

    def clear(self) -> None:
        with self._lock:
            self._states.clear()
            self._latest = None


_registry = _Registry()


def get_analysis_state(run_id: str) -> AnalysisState | None:
    return _registry.get(run_id)


def get_latest_state() -> AnalysisState | None:
    return _registry.latest()


def reset_runs() -> None:
    _registry.clear()


def start_analysis(
    session: ComplianceSession,
    config: AnalysisConfig,
) -> AnalysisState:
    """Reset the session and analyze the video on a daemon thread."""
    state = AnalysisState(
        run_id=str(uuid4()),
        video_path=str(config.video_path),
        running=True,
        processed_samples=0,
        total_samples=0,
        last_frame=None,
        error=None,
    )
    if not _registry.claim(state):
        raise ValueError("Analysis already running")

    session.reset()
    thread = threading.Thread(
        target=_run_analysis,
        args=(session, config, state.run_id),
        daemon=True,
    )
    thread.start()
    return state


def _run_analysis(
    session: ComplianceSession,
    config: AnalysisConfig,
    run_id: str,
) -> None:
    error_text: str | None = None
    try:
        total = count_samples(config.video_path, config.policy)
        _update(run_id, total_samples=total)

        def on_progress(processed: int, frame_index: int) -> None:
            _update(run_id, processed_samples=processed, last_frame=frame_index)

        session.analyze(
            sample_video(config.video_path, config.policy, config.jpeg_quality),
            total_samples=total,
            on_progress=on_progress,
        )
    except (DetectionServiceError, FrameSourceError, OSError, ValueError) as error:
        logger.error("analysis %s aborted: %s", run_id, error)
        error_text = str(error)
    except Exception as error:
        logger.exception("analysis %s crashed", run_id)
        error_text = f"{type(error).__name__}: {error}"
    finally:
        _update(run_id, running=False, error=error_text)


def _update(run_id: str, **changes: object) -> None:
    current = _registry.get(run_id)
    if current is None:
        return
    for key, value in changes.items():
        setattr(current, key, value)
    _registry.set(current)
