"""Derived compliance statistics over accumulated detections and alerts."""

from collections import Counter
from typing import Iterable, Sequence

from libs.core.domain.entities import PERSON_CLASS, SEVERITIES, Alert, Detection


def count_by_class(detections: Iterable[Detection], class_name: str) -> int:
    return sum(1 for item in detections if item.class_name == class_name)


def compliance_rate(detections: Sequence[Detection], class_name: str) -> float:
    persons = count_by_class(detections, PERSON_CLASS)
    if persons == 0:
        return 0.0
    return min(100.0, count_by_class(detections, class_name) / persons * 100)


def compliance_rates(
    detections: Sequence[Detection],
    classes: Iterable[str],
) -> dict[str, float]:
    return {
        class_name: compliance_rate(detections, class_name) for class_name in classes
    }


def alert_severity_counts(alerts: Iterable[Alert]) -> dict[str, int]:
    counts = {severity: 0 for severity in SEVERITIES}
    for alert in alerts:
        if alert.severity in counts:
            counts[alert.severity] += 1
    return counts


def overall_compliance_rate(
    detections: Sequence[Detection],
    alerts: Sequence[Alert],
) -> float:
    persons = count_by_class(detections, PERSON_CLASS)
    if persons == 0:
        return 0.0
    rate = (persons - len(alerts)) / persons * 100
    return max(0.0, min(100.0, rate))


def missing_class_counts(alerts: Iterable[Alert]) -> dict[str, int]:
    counter: Counter[str] = Counter()
    for alert in alerts:
        counter.update(alert.missing_classes)
    return dict(counter.most_common())


def detections_near_frame(
    detections: Iterable[Detection],
    frame: int,
    tolerance: int = 2,
) -> list[Detection]:
    return [item for item in detections if abs(item.frame - frame) <= tolerance]
