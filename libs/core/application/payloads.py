"""Parsing of detector response bodies into normalized raw detections."""

from __future__ import annotations

import logging
from typing import Any

from libs.core.domain.entities import PERSON_CLASS, Box, RawDetection
from libs.core.domain.errors import MalformedResponseError

logger = logging.getLogger(__name__)

PERSONS_KEY = "persons"
PPE_DETECTIONS_KEY = "ppe_detections"


def build_request_body(image_b64: str) -> dict[str, object]:
    return {"dataframe_records": [{"image_b64": image_b64}]}


def parse_person_payload(payload: Any) -> list[RawDetection]:
    try:
        records = _first_prediction_list(payload, PERSONS_KEY)
    except MalformedResponseError as error:
        logger.debug("person payload treated as empty: %s", error)
        return []
    return [
        RawDetection(
            label=PERSON_CLASS,
            score=_score(record),
            box=_person_box(record),
        )
        for record in records
        if isinstance(record, dict)
    ]


def parse_ppe_payload(payload: Any) -> list[RawDetection]:
    try:
        records = _first_prediction_list(payload, PPE_DETECTIONS_KEY)
    except MalformedResponseError as error:
        logger.debug("ppe payload treated as empty: %s", error)
        return []
    return [
        RawDetection(
            label=str(record.get("class_name") or "").lower(),
            score=_score(record),
            box=_ppe_box(record),
        )
        for record in records
        if isinstance(record, dict)
    ]


def _first_prediction_list(payload: Any, key: str) -> list[Any]:
    if not isinstance(payload, dict):
        raise MalformedResponseError("response body is not an object")
    predictions = payload.get("predictions")
    if not isinstance(predictions, list) or not predictions:
        raise MalformedResponseError("missing predictions")
    first = predictions[0]
    if not isinstance(first, dict):
        raise MalformedResponseError("prediction is not an object")
    records = first.get(key)
    if not isinstance(records, list):
        raise MalformedResponseError(f"missing {key}")
    return records


def _score(record: dict[str, Any]) -> float:
    try:
        return float(record.get("score") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _corners(value: Any) -> Box | None:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return None
    try:
        x1, y1, x2, y2 = (float(item) for item in value)
    except (TypeError, ValueError):
        return None
    return Box.from_corners(x1, y1, x2, y2)


def _field(record: dict[str, Any], key: str) -> float:
    try:
        return float(record.get(key) or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _person_box(record: dict[str, Any]) -> Box:
    box = _corners(record.get("box"))
    if box is not None:
        return box
    return Box(
        x=_field(record, "x"),
        y=_field(record, "y"),
        width=_field(record, "w"),
        height=_field(record, "h"),
    )


def _ppe_box(record: dict[str, Any]) -> Box:
    for key in ("box_model_input_coords", "box"):
        box = _corners(record.get(key))
        if box is not None:
            return box
    return Box(x=0.0, y=0.0, width=0.0, height=0.0)
