import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Body, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from libs.core.application.live_session import LiveSessionStatus
from libs.core.domain.entities import PERSON_CLASS, Alert, Detection
from libs.core.domain.errors import (
    CameraAcquisitionError,
    DetectionServiceError,
    InvalidSessionStateError,
    UploadValidationError,
)
from libs.core.domain.uploads import ensure_upload_size, ensure_video_content_type
from services.api_gateway.dependencies import (
    get_live_controller,
    get_session,
    get_settings,
    get_store,
    get_uploaded_video,
    sampling_policy,
    set_uploaded_video,
)
from services.api_gateway.infrastructure import relay
from services.api_gateway.infrastructure.analysis_runner import (
    AnalysisConfig,
    AnalysisState,
    get_latest_state,
    start_analysis,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_UPLOAD_CHUNK_BYTES = 1024 * 1024


class FrameIngestRequest(BaseModel):
    frame: int = Field(ge=0)
    person_payload: dict[str, Any] | None = None
    ppe_payload: dict[str, Any] | None = None


class SelfTestRequest(BaseModel):
    token: str


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
def ready() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/version")
def version() -> dict[str, str]:
    return {"version": "0.1.0"}


@router.post("/api/person-detector")
def relay_person_detector(payload: dict[str, Any] = Body(...)) -> Any:
    settings = get_settings()
    return _relay("person-detector", settings.person_upstream_url, payload)


@router.post("/api/ppe-detector")
def relay_ppe_detector(payload: dict[str, Any] = Body(...)) -> Any:
    settings = get_settings()
    return _relay("ppe-detector", settings.ppe_upstream_url, payload)


@router.post("/api/self-test")
def self_test(payload: SelfTestRequest) -> dict[str, object]:
    token = payload.token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")
    settings = get_settings()
    results = relay.self_test(
        person_url=settings.person_upstream_url,
        ppe_url=settings.ppe_upstream_url,
        token=token,
        timeout=settings.request_timeout_sec,
    )
    return {
        "ok": all(item.ok for item in results.values()),
        **{
            name: {"ok": item.ok, "status": item.status, "detail": item.detail}
            for name, item in results.items()
        },
    }


@router.post("/v1/videos")
def upload_video(file: UploadFile = File(...)) -> dict[str, object]:
    settings = get_settings()
    latest = get_latest_state()
    if latest is not None and latest.running:
        raise HTTPException(status_code=409, detail="Analysis already running")
    try:
        ensure_video_content_type(file.content_type)
    except UploadValidationError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / f"{uuid4()}{Path(file.filename or '').suffix}"
    size = 0
    try:
        with target.open("wb") as handle:
            while True:
                chunk = file.file.read(_UPLOAD_CHUNK_BYTES)
                if not chunk:
                    break
                size += len(chunk)
                ensure_upload_size(size, settings.max_upload_bytes)
                handle.write(chunk)
    except UploadValidationError as error:
        target.unlink(missing_ok=True)
        status_code = 413 if error.too_large else 400
        raise HTTPException(status_code=status_code, detail=str(error)) from error

    previous = get_uploaded_video()
    set_uploaded_video(str(target))
    get_session().reset()
    if previous is not None and previous != str(target):
        Path(previous).unlink(missing_ok=True)
    logger.info("video uploaded: %s (%s bytes)", file.filename, size)
    return {"filename": file.filename, "size_bytes": size, "accepted": True}


@router.post("/v1/analysis/start")
def start_video_analysis() -> dict[str, object]:
    video_path = get_uploaded_video()
    if video_path is None:
        raise HTTPException(status_code=409, detail="No video uploaded")
    settings = get_settings()
    try:
        state = start_analysis(
            get_session(),
            AnalysisConfig(
                video_path=Path(video_path),
                policy=sampling_policy,
                jpeg_quality=settings.jpeg_quality,
            ),
        )
    except ValueError as error:
        raise HTTPException(status_code=409, detail=str(error)) from error
    return _analysis_to_dict(state)


@router.get("/v1/analysis/status")
def get_video_analysis_status() -> dict[str, object]:
    state = get_latest_state()
    if state is None:
        return {
            "run_id": None,
            "running": False,
            "processed_samples": 0,
            "total_samples": 0,
            "progress": 0.0,
            "last_frame": None,
            "error": None,
        }
    return _analysis_to_dict(state)


@router.post("/v1/frames")
def ingest_frame_endpoint(payload: FrameIngestRequest) -> dict[str, object]:
    result = get_session().ingest_payloads(
        frame=payload.frame,
        person_payload=payload.person_payload,
        ppe_payload=payload.ppe_payload,
    )
    return {
        "frame": payload.frame,
        "accepted": True,
        "detections_created": len(result.detections),
        "alerts_created": len(result.alerts),
        "alert_ids": [alert.alert_id for alert in result.alerts],
    }


@router.get("/v1/detections")
def get_detections(
    class_name: str | None = None,
    frame: int | None = None,
    tolerance: int = 2,
) -> list[dict[str, object]]:
    store = get_store()
    if frame is not None:
        detections = store.detections_near_frame(frame=frame, tolerance=tolerance)
        if class_name is not None:
            detections = [item for item in detections if item.class_name == class_name]
    else:
        detections = store.list_detections(class_name=class_name)
    return [_detection_to_dict(item) for item in detections]


@router.get("/v1/alerts")
def get_alerts(severity: str | None = None) -> list[dict[str, object]]:
    alerts = get_store().list_alerts(severity=severity)
    return [_alert_to_dict(alert) for alert in alerts]


@router.get("/v1/stats")
def get_stats() -> dict[str, object]:
    store = get_store()
    vocabulary = get_session().reconciler.vocabulary
    alerts = store.list_alerts()
    return {
        "vocabulary": vocabulary.name,
        "detections_total": len(store.list_detections()),
        "persons_total": store.count_by_class(PERSON_CLASS),
        "class_counts": {
            class_name: store.count_by_class(class_name)
            for class_name in vocabulary.classes
        },
        "compliance_rates": {
            class_name: round(rate, 1)
            for class_name, rate in store.compliance_rates(vocabulary.classes).items()
        },
        "overall_compliance_rate": round(store.overall_compliance_rate(), 1),
        "alerts_total": len(alerts),
        "alert_severity_counts": store.alert_severity_counts(),
        "missing_class_counts": store.missing_class_counts(),
    }


@router.post("/v1/session/reset")
def reset_session() -> dict[str, str]:
    get_session().reset()
    return {"status": "reset"}


@router.post("/v1/live/camera/start")
def start_live_camera() -> dict[str, object]:
    controller = get_live_controller()
    try:
        controller.start_camera()
    except CameraAcquisitionError as error:
        raise HTTPException(status_code=503, detail=str(error)) from error
    return _live_to_dict(controller.status())


@router.post("/v1/live/start")
def start_live_analysis() -> dict[str, object]:
    controller = get_live_controller()
    try:
        controller.start_analysis()
    except InvalidSessionStateError as error:
        raise HTTPException(status_code=409, detail=str(error)) from error
    return _live_to_dict(controller.status())


@router.post("/v1/live/stop")
def stop_live_analysis() -> dict[str, object]:
    controller = get_live_controller()
    controller.stop_analysis()
    return _live_to_dict(controller.status())


@router.post("/v1/live/camera/stop")
def stop_live_camera() -> dict[str, object]:
    controller = get_live_controller()
    controller.teardown()
    return _live_to_dict(controller.status())


@router.get("/v1/live/status")
def get_live_status() -> dict[str, object]:
    return _live_to_dict(get_live_controller().status())


def _relay(service: str, url: str, payload: dict[str, Any]) -> Any:
    settings = get_settings()
    if not settings.upstream_token:
        raise HTTPException(status_code=503, detail="Upstream token not configured")
    try:
        return relay.forward(
            service=service,
            url=url,
            body=payload,
            token=settings.upstream_token,
            timeout=settings.request_timeout_sec,
        )
    except DetectionServiceError as error:
        logger.warning("relay failed: %s", error)
        raise HTTPException(status_code=502, detail=str(error)) from error


def _detection_to_dict(detection: Detection) -> dict[str, object]:
    return {
        "id": detection.detection_id,
        "class_name": detection.class_name,
        "confidence": detection.confidence,
        "box": detection.box.as_list(),
        "frame": detection.frame,
        "timestamp": detection.timestamp,
        "source_class_name": detection.source_class_name,
    }


def _alert_to_dict(alert: Alert) -> dict[str, object]:
    return {
        "id": alert.alert_id,
        "person_id": alert.person_id,
        "missing_classes": sorted(alert.missing_classes),
        "severity": alert.severity,
        "frame": alert.frame,
        "timestamp": alert.timestamp,
    }


def _analysis_to_dict(state: AnalysisState) -> dict[str, object]:
    return {
        "run_id": state.run_id,
        "running": state.running,
        "processed_samples": state.processed_samples,
        "total_samples": state.total_samples,
        "progress": state.progress,
        "last_frame": state.last_frame,
        "error": state.error,
    }


def _live_to_dict(status: LiveSessionStatus) -> dict[str, object]:
    return {
        "state": status.state,
        "missed_frames": status.missed_frames,
        "cycles_completed": status.cycles_completed,
        "last_frame": status.last_frame,
        "last_error": status.last_error,
    }
