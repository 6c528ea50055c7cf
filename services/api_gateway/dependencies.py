from libs.core.application.live_session import LiveSessionController
from libs.core.application.reconciler import DetectionReconciler
from libs.core.application.session_service import ComplianceSession
from libs.infra.http.detection_client import HttpDetectionClient
from libs.infra.video.camera import OpenCvCamera
from libs.infra.video.frame_sampler import FrameIntervalPolicy, WallClockPolicy
from services.api_gateway.infrastructure.analysis_runner import reset_runs
from services.api_gateway.infrastructure.memory_store import InMemoryDetectionStore
from services.api_gateway.settings import Settings

settings = Settings.from_env()
vocabulary = settings.vocabulary()

store = InMemoryDetectionStore()
reconciler = DetectionReconciler(
    vocabulary=vocabulary,
    min_confidence=settings.min_confidence,
    overlap_threshold=settings.overlap_threshold,
)
detection_client = HttpDetectionClient(
    person_url=settings.person_detector_url,
    ppe_url=settings.ppe_detector_url,
    timeout_sec=settings.request_timeout_sec,
)
session = ComplianceSession(
    store=store,
    reconciler=reconciler,
    detector=detection_client,
)
live_controller = LiveSessionController(
    session=session,
    camera=OpenCvCamera(
        index=settings.camera_index,
        jpeg_quality=settings.jpeg_quality,
    ),
    interval_sec=WallClockPolicy(interval_ms=settings.live_interval_ms).interval_sec,
    max_missed_frames=settings.max_missed_frames,
    presence_threshold=settings.presence_threshold,
)
sampling_policy = FrameIntervalPolicy(
    step=settings.sample_step,
    total_frames=settings.sample_total_frames,
    nominal_fps=settings.nominal_fps,
)

_uploaded_video: dict[str, str] = {}


def get_settings() -> Settings:
    return settings


def get_session() -> ComplianceSession:
    return session


def get_store() -> InMemoryDetectionStore:
    return store


def get_detection_client() -> HttpDetectionClient:
    return detection_client


def get_live_controller() -> LiveSessionController:
    return live_controller


def get_uploaded_video() -> str | None:
    return _uploaded_video.get("path")


def set_uploaded_video(path: str) -> None:
    _uploaded_video["path"] = path


def reset_state() -> None:
    live_controller.teardown()
    session.reset()
    reset_runs()
    _uploaded_video.clear()
