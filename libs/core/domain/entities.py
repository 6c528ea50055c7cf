from dataclasses import dataclass, field
from typing import Optional

PERSON_CLASS = "person"

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"
SEVERITIES = (SEVERITY_HIGH, SEVERITY_MEDIUM, SEVERITY_LOW)


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle in source-image pixels."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "Box":
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def as_list(self) -> list[float]:
        return [self.x, self.y, self.width, self.height]


@dataclass(frozen=True)
class RawDetection:
    """Detector output normalized to one shape, before reconciliation."""

    label: str
    score: float
    box: Box


@dataclass(frozen=True)
class Detection:
    """One observed object in one sampled frame."""

    detection_id: str
    class_name: str
    confidence: float
    box: Box
    frame: int
    timestamp: float
    source_class_name: Optional[str] = None


@dataclass(frozen=True)
class Alert:
    """A person observed in a frame without one or more required PPE classes."""

    alert_id: str
    person_id: str
    missing_classes: frozenset[str]
    severity: str
    frame: int
    timestamp: float


@dataclass(frozen=True)
class FrameResult:
    """Reconciled output for one frame."""

    frame: int
    detections: list[Detection] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
