"""Batch analysis tests for the compliance session."""

import pytest

from libs.core.application.contracts import DetectionPair
from libs.core.application.reconciler import DetectionReconciler
from libs.core.application.session_service import ComplianceSession
from libs.core.domain.entities import PERSON_CLASS, Box, RawDetection
from libs.core.domain.errors import DetectionServiceError
from services.api_gateway.infrastructure.memory_store import InMemoryDetectionStore


class ScriptedDetector:
    def __init__(self, pairs: list[DetectionPair]) -> None:
        self._pairs = pairs
        self.calls: list[bytes] = []

    def detect(self, image_bytes: bytes) -> DetectionPair:
        self.calls.append(image_bytes)
        return self._pairs.pop(0)


def _person_pair(box: tuple[float, float, float, float]) -> DetectionPair:
    return DetectionPair(
        persons=[
            RawDetection(label=PERSON_CLASS, score=0.9, box=Box.from_corners(*box))
        ],
        ppe=[RawDetection(label="mask", score=0.8, box=Box(0, 0, 1, 1))],
    )


def _session(pairs: list[DetectionPair]) -> tuple[ComplianceSession, ScriptedDetector]:
    detector = ScriptedDetector(pairs)
    session = ComplianceSession(
        store=InMemoryDetectionStore(),
        reconciler=DetectionReconciler(clock=lambda: 0.0),
        detector=detector,
    )
    return session, detector


def test_consecutive_overlapping_frames_keep_one_person() -> None:
    session, detector = _session(
        [_person_pair((10, 10, 50, 90)), _person_pair((12, 11, 49, 88))]
    )
    progress: list[tuple[int, int]] = []

    summary = session.analyze(
        [(0, b"f0"), (10, b"f10")],
        total_samples=2,
        on_progress=lambda processed, frame: progress.append((processed, frame)),
    )

    assert detector.calls == [b"f0", b"f10"]
    assert progress == [(1, 0), (2, 10)]
    assert summary.processed_samples == 2
    assert len(session.store.persons()) == 1
    assert session.store.count_by_class("mask") == 2
    assert len(session.store.list_alerts()) == 2


def test_single_service_failure_continues_run() -> None:
    session, _ = _session(
        [
            DetectionPair(
                persons=[],
                ppe=[],
                failures=[DetectionServiceError("person-detector", "HTTP 500")],
            ),
            _person_pair((0, 0, 10, 10)),
        ]
    )

    summary = session.analyze([(0, b"a"), (10, b"b")])

    assert summary.processed_samples == 2
    assert len(session.store.persons()) == 1


def test_frame_with_no_detector_response_aborts_run() -> None:
    failures = [
        DetectionServiceError("person-detector", "timed out"),
        DetectionServiceError("ppe-detector", "timed out"),
    ]
    session, detector = _session(
        [_person_pair((0, 0, 10, 10)), DetectionPair(failures=failures)]
    )

    with pytest.raises(DetectionServiceError) as excinfo:
        session.analyze([(0, b"a"), (10, b"b"), (20, b"c")])

    assert excinfo.value.service == "person-detector"
    assert len(detector.calls) == 2
    assert len(session.store.persons()) == 1


def test_reset_clears_store() -> None:
    session, _ = _session([_person_pair((0, 0, 10, 10))])
    session.process_frame(frame=0, image_bytes=b"a")

    session.reset()

    assert session.store.list_detections() == []
