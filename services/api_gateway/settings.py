"""Gateway configuration read from the environment and an optional .env file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

from libs.core.domain.uploads import MAX_UPLOAD_BYTES
from libs.core.domain.vocabulary import PpeVocabulary, get_vocabulary

load_dotenv(find_dotenv(filename=".env", usecwd=True), override=False)

PERSON_DETECTOR_UPSTREAM_URL = (
    "https://adb-367534349465137.17.azuredatabricks.net"
    "/serving-endpoints/person-detector/invocations"
)
PPE_DETECTOR_UPSTREAM_URL = (
    "https://adb-367534349465137.17.azuredatabricks.net"
    "/serving-endpoints/ppe_senac_detector/invocations"
)


class VocabularyFile(BaseModel):
    """JSON layout of a custom PPE vocabulary."""

    name: str = "custom"
    label_map: dict[str, str]
    required: list[str] = Field(default_factory=list)

    def to_vocabulary(self) -> PpeVocabulary:
        return PpeVocabulary(
            name=self.name,
            label_map={key.lower(): value for key, value in self.label_map.items()},
            required=frozenset(self.required),
        )


def load_vocabulary_file(path: str | Path) -> PpeVocabulary:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return VocabularyFile.model_validate(raw).to_vocabulary()


@dataclass
class Settings:
    """Runtime settings of the gateway."""

    detector_base_url: str
    person_upstream_url: str
    ppe_upstream_url: str
    upstream_token: str
    request_timeout_sec: float
    vocabulary_name: str
    vocabulary_file: str | None
    min_confidence: float
    overlap_threshold: float
    sample_step: int
    sample_total_frames: int | None
    nominal_fps: float
    jpeg_quality: int
    live_interval_ms: int
    max_missed_frames: int
    presence_threshold: float
    camera_index: int
    upload_dir: str
    max_upload_bytes: int
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        total_frames = _env_int("SAMPLE_TOTAL_FRAMES", 100)
        return cls(
            detector_base_url=_env_str("DETECTOR_BASE_URL", "http://127.0.0.1:8000"),
            person_upstream_url=_env_str(
                "PERSON_DETECTOR_UPSTREAM_URL", PERSON_DETECTOR_UPSTREAM_URL
            ),
            ppe_upstream_url=_env_str(
                "PPE_DETECTOR_UPSTREAM_URL", PPE_DETECTOR_UPSTREAM_URL
            ),
            upstream_token=_env_str("DETECTOR_API_TOKEN", ""),
            request_timeout_sec=_env_float("DETECTOR_TIMEOUT_SEC", 15.0),
            vocabulary_name=_env_str("PPE_VOCABULARY", "six_class"),
            vocabulary_file=_env_str("PPE_VOCABULARY_FILE", "") or None,
            min_confidence=_env_float("MIN_CONFIDENCE", 0.5),
            overlap_threshold=_env_float("PERSON_OVERLAP_THRESHOLD", 0.7),
            sample_step=_env_int("SAMPLE_STEP", 10),
            sample_total_frames=total_frames if total_frames > 0 else None,
            nominal_fps=_env_float("SAMPLE_NOMINAL_FPS", 30.0),
            jpeg_quality=_env_int("JPEG_QUALITY", 80),
            live_interval_ms=_env_int("LIVE_INTERVAL_MS", 500),
            max_missed_frames=_env_int("LIVE_MAX_MISSED_FRAMES", 5),
            presence_threshold=_env_float("LIVE_PRESENCE_THRESHOLD", 0.6),
            camera_index=_env_int("CAMERA_INDEX", 0),
            upload_dir=_env_str("UPLOAD_DIR", "data/uploads"),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def person_detector_url(self) -> str:
        return f"{self.detector_base_url.rstrip('/')}/api/person-detector"

    @property
    def ppe_detector_url(self) -> str:
        return f"{self.detector_base_url.rstrip('/')}/api/ppe-detector"

    def vocabulary(self) -> PpeVocabulary:
        if self.vocabulary_file:
            return load_vocabulary_file(self.vocabulary_file)
        return get_vocabulary(self.vocabulary_name)


def _env_str(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip().strip("\"'")
    return value if value != "" else default


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env_str(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(_env_str(key, str(default)))
    except ValueError:
        return default
