from libs.core.domain.errors import UploadValidationError

MAX_UPLOAD_BYTES = 100 * 1024 * 1024


def ensure_video_content_type(content_type: str | None) -> None:
    if not content_type or not content_type.startswith("video/"):
        raise UploadValidationError("file is not a video")


def ensure_upload_size(size_bytes: int, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    if size_bytes > max_bytes:
        raise UploadValidationError(
            f"video exceeds {max_bytes // (1024 * 1024)} MB",
            too_large=True,
        )
