from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Sequence

from libs.core.application.payloads import parse_person_payload, parse_ppe_payload
from libs.core.domain.entities import (
    PERSON_CLASS,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    Alert,
    Detection,
    FrameResult,
    RawDetection,
)
from libs.core.domain.geometry import candidate_coverage
from libs.core.domain.vocabulary import SIX_CLASS_VOCABULARY, PpeVocabulary

DEFAULT_MIN_CONFIDENCE = 0.5
DEFAULT_OVERLAP_THRESHOLD = 0.7


def classify_severity(missing_classes: Iterable[str]) -> str | None:
    missing_total = len(set(missing_classes))
    if missing_total >= 2:
        return SEVERITY_HIGH
    if missing_total == 1:
        return SEVERITY_MEDIUM
    return None


def deduplicate_persons(
    accumulated: Sequence[Detection],
    candidates: Sequence[Detection],
    threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> list[Detection]:
    """Return the candidates that do not overlap an already kept person.

    A candidate is dropped when an accumulated person, or an earlier kept
    candidate, covers more than ``threshold`` of the candidate's area.
    """
    existing = [item for item in accumulated if item.class_name == PERSON_CLASS]
    kept: list[Detection] = []
    for candidate in candidates:
        if candidate.class_name != PERSON_CLASS:
            kept.append(candidate)
            continue
        duplicate = any(
            candidate_coverage(item.box, candidate.box) > threshold for item in existing
        )
        if not duplicate:
            kept.append(candidate)
            existing.append(candidate)
    return kept


class DetectionReconciler:
    """Merges one frame of person and PPE detector output into records."""

    def __init__(
        self,
        vocabulary: PpeVocabulary = SIX_CLASS_VOCABULARY,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.vocabulary = vocabulary
        self.min_confidence = min_confidence
        self.overlap_threshold = overlap_threshold
        self._clock = clock

    def reconcile(
        self,
        persons: Sequence[RawDetection],
        ppe: Sequence[RawDetection],
        frame: int,
        accumulated_persons: Sequence[Detection] = (),
    ) -> FrameResult:
        timestamp = self._clock()
        person_detections = self._person_detections(persons, frame, timestamp)
        ppe_detections = self._ppe_detections(ppe, frame, timestamp)

        observed = {item.class_name for item in ppe_detections}
        missing = frozenset(self.vocabulary.required - observed)
        alerts = self._build_alerts(person_detections, missing, frame, timestamp)

        kept_persons = deduplicate_persons(
            accumulated=accumulated_persons,
            candidates=person_detections,
            threshold=self.overlap_threshold,
        )
        return FrameResult(
            frame=frame,
            detections=[*kept_persons, *ppe_detections],
            alerts=alerts,
        )

    def reconcile_payloads(
        self,
        person_payload: Any,
        ppe_payload: Any,
        frame: int,
        accumulated_persons: Sequence[Detection] = (),
    ) -> FrameResult:
        return self.reconcile(
            persons=parse_person_payload(person_payload),
            ppe=parse_ppe_payload(ppe_payload),
            frame=frame,
            accumulated_persons=accumulated_persons,
        )

    def _person_detections(
        self,
        persons: Sequence[RawDetection],
        frame: int,
        timestamp: float,
    ) -> list[Detection]:
        return [
            Detection(
                detection_id=f"person-{frame}-{index}",
                class_name=PERSON_CLASS,
                confidence=raw.score,
                box=raw.box,
                frame=frame,
                timestamp=timestamp,
                source_class_name=raw.label,
            )
            for index, raw in enumerate(persons)
            if raw.score >= self.min_confidence
        ]

    def _ppe_detections(
        self,
        ppe: Sequence[RawDetection],
        frame: int,
        timestamp: float,
    ) -> list[Detection]:
        detections: list[Detection] = []
        for index, raw in enumerate(ppe):
            canonical = self.vocabulary.canonical_class(raw.label)
            # unknown labels are dropped
            if canonical is None or raw.score < self.min_confidence:
                continue
            detections.append(
                Detection(
                    detection_id=f"ppe-{frame}-{index}",
                    class_name=canonical,
                    confidence=raw.score,
                    box=raw.box,
                    frame=frame,
                    timestamp=timestamp,
                    source_class_name=raw.label,
                )
            )
        return detections

    @staticmethod
    def _build_alerts(
        persons: Sequence[Detection],
        missing: frozenset[str],
        frame: int,
        timestamp: float,
    ) -> list[Alert]:
        severity = classify_severity(missing)
        if severity is None:
            return []
        return [
            Alert(
                alert_id=f"alert-{frame}-{ordinal}",
                person_id=person.detection_id,
                missing_classes=missing,
                severity=severity,
                frame=frame,
                timestamp=timestamp,
            )
            for ordinal, person in enumerate(persons)
        ]
