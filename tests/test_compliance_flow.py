"""Compliance API flow tests."""

import threading
import time
from typing import Any

import pytest
from fastapi.testclient import TestClient

from libs.core.application.contracts import DetectionPair
from libs.core.domain.entities import PERSON_CLASS, Box, RawDetection
from libs.infra.http import transport
from libs.infra.video.frame_sampler import FrameIntervalPolicy
from services.api_gateway import dependencies
from services.api_gateway.app import app
from services.api_gateway.dependencies import reset_state
from services.api_gateway.presentation.http import routes

client = TestClient(app)


def setup_function() -> None:
    reset_state()


def _ingest_frame(
    frame: int,
    persons: list[dict[str, Any]] | None = None,
    ppe: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    response = client.post(
        "/v1/frames",
        json={
            "frame": frame,
            "person_payload": {"predictions": [{"persons": persons or []}]},
            "ppe_payload": {"predictions": [{"ppe_detections": ppe or []}]},
        },
    )
    assert response.status_code == 200
    return response.json()


def test_frame_with_unprotected_person_creates_alert() -> None:
    result = _ingest_frame(
        frame=0,
        persons=[{"score": 0.9, "box": [10, 10, 50, 90]}],
        ppe=[{"class_name": "mask", "score": 0.8, "box": [20, 15, 40, 30]}],
    )

    assert result["detections_created"] == 2
    assert result["alerts_created"] == 1

    alerts = client.get("/v1/alerts").json()
    assert alerts[0]["id"] == result["alert_ids"][0]
    assert alerts[0]["person_id"] == "person-0-0"
    assert alerts[0]["missing_classes"] == ["glasses", "hearing"]
    assert alerts[0]["severity"] == "high"


def test_frame_without_predictions_is_accepted() -> None:
    response = client.post("/v1/frames", json={"frame": 5})

    assert response.status_code == 200
    assert response.json()["detections_created"] == 0
    assert response.json()["alerts_created"] == 0


def test_stats_after_two_overlapping_frames() -> None:
    _ingest_frame(
        frame=0,
        persons=[{"score": 0.9, "box": [10, 10, 50, 90]}],
        ppe=[
            {"class_name": "mask", "score": 0.9},
            {"class_name": "goggles", "score": 0.9},
        ],
    )
    _ingest_frame(
        frame=10,
        persons=[{"score": 0.9, "box": [12, 11, 49, 88]}],
        ppe=[{"class_name": "mask", "score": 0.9}],
    )

    stats = client.get("/v1/stats").json()

    assert stats["vocabulary"] == "six_class"
    assert stats["persons_total"] == 1
    assert stats["compliance_rates"]["mask"] == 100.0
    assert stats["compliance_rates"]["hearing"] == 0.0
    assert stats["alerts_total"] == 2
    assert stats["alert_severity_counts"] == {"high": 1, "medium": 1, "low": 0}
    assert stats["overall_compliance_rate"] == 0.0
    assert stats["missing_class_counts"] == {"hearing": 2, "glasses": 1}


def test_detections_filtered_by_frame_and_class() -> None:
    _ingest_frame(frame=0, persons=[{"score": 0.9, "box": [0, 0, 10, 10]}])
    _ingest_frame(
        frame=10,
        persons=[{"score": 0.9, "box": [100, 100, 120, 140]}],
        ppe=[{"class_name": "hat", "score": 0.9, "box": [100, 100, 110, 105]}],
    )

    near = client.get("/v1/detections", params={"frame": 11}).json()
    persons = client.get("/v1/detections", params={"class_name": "person"}).json()

    assert [item["frame"] for item in near] == [10, 10]
    assert [item["box"] for item in persons] == [
        [0.0, 0.0, 10.0, 10.0],
        [100.0, 100.0, 20.0, 40.0],
    ]


def test_alerts_filtered_by_severity_and_reset() -> None:
    _ingest_frame(
        frame=0,
        persons=[{"score": 0.9, "box": [0, 0, 10, 10]}],
        ppe=[
            {"class_name": "mask", "score": 0.9},
            {"class_name": "goggles", "score": 0.9},
        ],
    )

    assert len(client.get("/v1/alerts", params={"severity": "medium"}).json()) == 1
    assert client.get("/v1/alerts", params={"severity": "high"}).json() == []

    reset = client.post("/v1/session/reset")
    assert reset.status_code == 200
    assert client.get("/v1/alerts").json() == []
    assert client.get("/v1/stats").json()["persons_total"] == 0


def test_upload_rejects_non_video(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dependencies.settings, "upload_dir", str(tmp_path))
    _ingest_frame(frame=0, persons=[{"score": 0.9, "box": [0, 0, 10, 10]}])

    response = client.post(
        "/v1/videos",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "file is not a video"
    assert client.get("/v1/stats").json()["persons_total"] == 1
    assert list(tmp_path.iterdir()) == []


def test_upload_rejects_oversized_video(
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(dependencies.settings, "upload_dir", str(tmp_path))
    monkeypatch.setattr(dependencies.settings, "max_upload_bytes", 4)

    response = client.post(
        "/v1/videos",
        files={"file": ("clip.mp4", b"0123456789", "video/mp4")},
    )

    assert response.status_code == 413
    assert list(tmp_path.iterdir()) == []


def test_upload_accepts_video_and_resets_session(
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(dependencies.settings, "upload_dir", str(tmp_path))
    _ingest_frame(frame=0, persons=[{"score": 0.9, "box": [0, 0, 10, 10]}])

    response = client.post(
        "/v1/videos",
        files={"file": ("clip.mp4", b"fake-video", "video/mp4")},
    )

    assert response.status_code == 200
    assert response.json()["size_bytes"] == len(b"fake-video")
    assert client.get("/v1/stats").json()["persons_total"] == 0
    assert [path.suffix for path in tmp_path.iterdir()] == [".mp4"]


def test_analysis_start_without_video_returns_409() -> None:
    response = client.post("/v1/analysis/start")

    assert response.status_code == 409
    assert response.json()["detail"] == "No video uploaded"
    status = client.get("/v1/analysis/status").json()
    assert status["running"] is False
    assert status["run_id"] is None


def test_relay_forwards_body_with_bearer_token(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, dict[str, Any], dict[str, str]]] = []

    def fake_post_json(
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float = 0.0,
    ) -> dict[str, Any]:
        calls.append((url, payload, headers or {}))
        return {"predictions": [{"persons": [{"score": 0.75}]}]}

    monkeypatch.setattr(dependencies.settings, "upstream_token", "secret")
    monkeypatch.setattr(transport, "post_json", fake_post_json)
    body = {"dataframe_records": [{"image_b64": "aGVsbG8="}]}

    response = client.post("/api/person-detector", json=body)

    assert response.status_code == 200
    assert response.json() == {"predictions": [{"persons": [{"score": 0.75}]}]}
    url, payload, headers = calls[0]
    assert url == dependencies.settings.person_upstream_url
    assert payload == body
    assert headers == {"Authorization": "Bearer secret"}


def test_relay_without_token_returns_503(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dependencies.settings, "upstream_token", "")

    response = client.post("/api/ppe-detector", json={"dataframe_records": []})

    assert response.status_code == 503


def test_relay_upstream_failure_returns_502(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_post_json(*args: Any, **kwargs: Any) -> Any:
        raise TimeoutError("timed out")

    monkeypatch.setattr(dependencies.settings, "upstream_token", "secret")
    monkeypatch.setattr(transport, "post_json", failing_post_json)

    response = client.post("/api/ppe-detector", json={"dataframe_records": []})

    assert response.status_code == 502
    assert response.json()["detail"] == "ppe-detector: timed out"


def test_self_test_reports_each_upstream(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post_json(
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float = 0.0,
    ) -> dict[str, Any]:
        if url == dependencies.settings.ppe_upstream_url:
            raise ConnectionRefusedError("refused")
        return {"predictions": []}

    monkeypatch.setattr(transport, "post_json", fake_post_json)

    response = client.post("/api/self-test", json={"token": "user-token"})
    empty = client.post("/api/self-test", json={"token": "  "})

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is False
    assert payload["person"] == {"ok": True, "status": 200, "detail": None}
    assert payload["ppe"]["ok"] is False
    assert empty.status_code == 400


def test_live_status_starts_idle() -> None:
    response = client.get("/v1/live/status")
    start = client.post("/v1/live/start")

    assert response.json()["state"] == "idle"
    assert start.status_code == 409


class GatedDetector:
    def __init__(self) -> None:
        self.gate = threading.Event()
        self.gate.set()

    def detect(self, image_bytes: bytes) -> DetectionPair:
        self.gate.wait(timeout=5.0)
        return DetectionPair(
            persons=[
                RawDetection(
                    label=PERSON_CLASS,
                    score=0.9,
                    box=Box(x=0, y=0, width=20, height=40),
                )
            ],
            ppe=[RawDetection(label="mask", score=0.9, box=Box(0, 0, 5, 5))],
        )


def _use_clip(
    monkeypatch: pytest.MonkeyPatch,
    upload_dir,
    detector: GatedDetector,
) -> None:
    monkeypatch.setattr(dependencies.settings, "upload_dir", str(upload_dir))
    monkeypatch.setattr(dependencies.session, "detector", detector)
    monkeypatch.setattr(
        routes,
        "sampling_policy",
        FrameIntervalPolicy(step=10, total_frames=30, nominal_fps=30.0),
    )


def _upload_clip(video_clip) -> Any:
    return client.post(
        "/v1/videos",
        files={"file": ("clip.avi", video_clip.read_bytes(), "video/x-msvideo")},
    )


def _wait_for_analysis(timeout: float = 5.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout
    status = client.get("/v1/analysis/status").json()
    while status["running"] and time.monotonic() < deadline:
        time.sleep(0.01)
        status = client.get("/v1/analysis/status").json()
    return status


def test_analysis_of_uploaded_video_fills_session(
    video_clip,
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _use_clip(monkeypatch, tmp_path / "uploads", GatedDetector())
    assert _upload_clip(video_clip).status_code == 200

    started = client.post("/v1/analysis/start")
    assert started.status_code == 200
    assert started.json()["running"] is True

    status = _wait_for_analysis()
    assert status["running"] is False
    assert status["error"] is None
    assert status["processed_samples"] == 3
    assert status["progress"] == 100.0

    stats = client.get("/v1/stats").json()
    assert stats["persons_total"] == 1
    assert client.get("/v1/detections", params={"class_name": "mask"}).json()
    assert len(client.get("/v1/alerts").json()) == 3


def test_upload_and_restart_are_refused_while_analysis_runs(
    video_clip,
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    detector = GatedDetector()
    detector.gate.clear()
    _use_clip(monkeypatch, tmp_path / "uploads", detector)
    assert _upload_clip(video_clip).status_code == 200
    assert client.post("/v1/analysis/start").status_code == 200

    try:
        second_upload = _upload_clip(video_clip)
        restart = client.post("/v1/analysis/start")
    finally:
        detector.gate.set()

    assert second_upload.status_code == 409
    assert second_upload.json()["detail"] == "Analysis already running"
    assert restart.status_code == 409
    assert _wait_for_analysis()["error"] is None
    assert len(list((tmp_path / "uploads").iterdir())) == 1
