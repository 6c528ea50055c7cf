"""In-memory storage for detections and alerts of the current session."""

import threading
from typing import Iterable

from libs.core.application import statistics
from libs.core.domain.entities import PERSON_CLASS, Alert, Detection, FrameResult


class InMemoryDetectionStore:
    """Append-only store with derived compliance statistics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._detections: list[Detection] = []
        self._alerts: list[Alert] = []

    def append(self, result: FrameResult) -> None:
        with self._lock:
            self._detections.extend(result.detections)
            self._alerts.extend(result.alerts)

    def reset(self) -> None:
        with self._lock:
            self._detections.clear()
            self._alerts.clear()

    def list_detections(self, class_name: str | None = None) -> list[Detection]:
        detections = self._snapshot_detections()
        if class_name is None:
            return detections
        return [item for item in detections if item.class_name == class_name]

    def list_alerts(self, severity: str | None = None) -> list[Alert]:
        alerts = self._snapshot_alerts()
        if severity is None:
            return alerts
        return [alert for alert in alerts if alert.severity == severity]

    def persons(self) -> list[Detection]:
        return self.list_detections(class_name=PERSON_CLASS)

    def count_by_class(self, class_name: str) -> int:
        return statistics.count_by_class(self._snapshot_detections(), class_name)

    def compliance_rate(self, class_name: str) -> float:
        return statistics.compliance_rate(self._snapshot_detections(), class_name)

    def compliance_rates(self, classes: Iterable[str]) -> dict[str, float]:
        return statistics.compliance_rates(self._snapshot_detections(), classes)

    def alert_severity_counts(self) -> dict[str, int]:
        return statistics.alert_severity_counts(self._snapshot_alerts())

    def overall_compliance_rate(self) -> float:
        with self._lock:
            detections = list(self._detections)
            alerts = list(self._alerts)
        return statistics.overall_compliance_rate(detections, alerts)

    def missing_class_counts(self) -> dict[str, int]:
        return statistics.missing_class_counts(self._snapshot_alerts())

    def detections_near_frame(self, frame: int, tolerance: int = 2) -> list[Detection]:
        return statistics.detections_near_frame(
            self._snapshot_detections(), frame=frame, tolerance=tolerance
        )

    def _snapshot_detections(self) -> list[Detection]:
        with self._lock:
            return list(self._detections)

    def _snapshot_alerts(self) -> list[Alert]:
        with self._lock:
            return list(self._alerts)
