from dataclasses import dataclass, field
from typing import Protocol

from libs.core.domain.entities import Alert, Detection, FrameResult, RawDetection
from libs.core.domain.errors import DetectionServiceError

PERSON_SERVICE = "person-detector"
PPE_SERVICE = "ppe-detector"


@dataclass
class DetectionPair:
    """Normalized output of both detectors for one frame."""

    persons: list[RawDetection] = field(default_factory=list)
    ppe: list[RawDetection] = field(default_factory=list)
    failures: list[DetectionServiceError] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return len(self.failures) >= 2

    @property
    def person_failure(self) -> DetectionServiceError | None:
        for failure in self.failures:
            if failure.service == PERSON_SERVICE:
                return failure
        return None


class DetectionGateway(Protocol):
    """Client for the person and PPE detection services."""

    def detect(self, image_bytes: bytes) -> DetectionPair: ...


class CameraDevice(Protocol):
    """Live video source producing encoded still frames."""

    def open(self) -> None: ...

    def read_frame(self) -> bytes: ...

    def release(self) -> None: ...


class DetectionStore(Protocol):
    """Accumulated detections and alerts of one session."""

    def append(self, result: FrameResult) -> None: ...

    def reset(self) -> None: ...

    def list_detections(self, class_name: str | None = None) -> list[Detection]: ...

    def list_alerts(self, severity: str | None = None) -> list[Alert]: ...

    def persons(self) -> list[Detection]: ...
