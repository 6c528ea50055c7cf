"""Error taxonomy shared by the pipeline and the gateway."""


class ComplianceError(Exception):
    """Base class for pipeline errors."""


class TransportError(ComplianceError):
    """Network or transport failure talking to an external service."""


class DetectionServiceError(TransportError):
    """A single detection service could not be reached."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class MalformedResponseError(ComplianceError):
    """Detector answered without the fields it is expected to return."""


class CameraAcquisitionError(ComplianceError):
    """Live video stream could not be opened or read."""


class FrameSourceError(ComplianceError):
    """Video file could not be opened for sampling."""


class UploadValidationError(ComplianceError):
    """Uploaded file rejected before it reaches the pipeline."""

    def __init__(self, message: str, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large


class InvalidSessionStateError(ComplianceError):
    """Live session transition requested from the wrong state."""


class VocabularyError(ComplianceError):
    """PPE class vocabulary is inconsistent."""
