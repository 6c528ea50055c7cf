from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from libs.core.application.contracts import (
    DetectionGateway,
    DetectionPair,
    DetectionStore,
)
from libs.core.application.reconciler import DetectionReconciler
from libs.core.domain.entities import FrameResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class AnalysisSummary:
    """Outcome of one batch analysis run."""

    processed_samples: int
    detections_total: int
    alerts_total: int


class ComplianceSession:
    """Owns one monitoring session and is its only mutation point."""

    def __init__(
        self,
        store: DetectionStore,
        reconciler: DetectionReconciler,
        detector: DetectionGateway,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        self.detector = detector
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self.store.reset()

    def detect(self, image_bytes: bytes) -> DetectionPair:
        pair = self.detector.detect(image_bytes)
        if pair.all_failed:
            raise pair.failures[0]
        for failure in pair.failures:
            logger.warning("detector failed, using empty result: %s", failure)
        return pair

    def process_frame(self, frame: int, image_bytes: bytes) -> FrameResult:
        pair = self.detect(image_bytes)
        return self.ingest_detections(frame=frame, pair=pair)

    def ingest_detections(self, frame: int, pair: DetectionPair) -> FrameResult:
        with self._lock:
            result = self.reconciler.reconcile(
                persons=pair.persons,
                ppe=pair.ppe,
                frame=frame,
                accumulated_persons=self.store.persons(),
            )
            self.store.append(result)
        return result

    def ingest_payloads(
        self,
        frame: int,
        person_payload: Any,
        ppe_payload: Any,
    ) -> FrameResult:
        with self._lock:
            result = self.reconciler.reconcile_payloads(
                person_payload=person_payload,
                ppe_payload=ppe_payload,
                frame=frame,
                accumulated_persons=self.store.persons(),
            )
            self.store.append(result)
        return result

    def analyze(
        self,
        frames: Iterable[tuple[int, bytes]],
        total_samples: int = 0,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisSummary:
        """Run frames through the pipeline one at a time.

        The first frame for which neither detector answered aborts the run
        with the underlying ``DetectionServiceError``.
        """
        processed = 0
        detections_total = 0
        alerts_total = 0
        for frame_index, image_bytes in frames:
            result = self.process_frame(frame=frame_index, image_bytes=image_bytes)
            processed += 1
            detections_total += len(result.detections)
            alerts_total += len(result.alerts)
            logger.debug(
                "frame %s: %s detections, %s alerts",
                frame_index,
                len(result.detections),
                len(result.alerts),
            )
            if on_progress is not None:
                on_progress(processed, frame_index)

        logger.info(
            "analysis finished: %s/%s samples, %s alerts",
            processed,
            total_samples or processed,
            alerts_total,
        )
        return AnalysisSummary(
            processed_samples=processed,
            detections_total=detections_total,
            alerts_total=alerts_total,
        )
