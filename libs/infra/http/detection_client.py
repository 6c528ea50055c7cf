"""HTTP client for the person and PPE detection services."""

from __future__ import annotations

import base64
import http.client
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable
from urllib.error import HTTPError, URLError

from libs.core.application.contracts import (
    PERSON_SERVICE,
    PPE_SERVICE,
    DetectionPair,
)
from libs.core.application.payloads import (
    build_request_body,
    parse_person_payload,
    parse_ppe_payload,
)
from libs.core.domain.entities import RawDetection
from libs.core.domain.errors import DetectionServiceError
from libs.infra.http import transport

logger = logging.getLogger(__name__)

PostJson = Callable[..., Any]


class HttpDetectionClient:
    """Sends one frame to both detectors in parallel."""

    def __init__(
        self,
        person_url: str,
        ppe_url: str,
        timeout_sec: float = transport.DEFAULT_TIMEOUT_SEC,
        headers: dict[str, str] | None = None,
        post_json: PostJson | None = None,
    ) -> None:
        self._person_url = person_url
        self._ppe_url = ppe_url
        self._timeout_sec = timeout_sec
        self._headers = headers or {}
        self._post_json = post_json or transport.post_json
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    def detect(self, image_bytes: bytes) -> DetectionPair:
        body = build_request_body(base64.b64encode(image_bytes).decode("ascii"))
        executor = self._pool()
        person_future = executor.submit(
            self._call, PERSON_SERVICE, self._person_url, body, parse_person_payload
        )
        ppe_future = executor.submit(
            self._call, PPE_SERVICE, self._ppe_url, body, parse_ppe_payload
        )

        pair = DetectionPair()
        for future, target in ((person_future, pair.persons), (ppe_future, pair.ppe)):
            try:
                target.extend(future.result())
            except DetectionServiceError as error:
                pair.failures.append(error)
        return pair

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=2, thread_name_prefix="detector"
                )
            return self._executor

    def _call(
        self,
        service: str,
        url: str,
        body: dict[str, object],
        parse: Callable[[Any], list[RawDetection]],
    ) -> list[RawDetection]:
        try:
            payload = self._post_json(
                url, body, headers=self._headers, timeout=self._timeout_sec
            )
        except HTTPError as error:
            raise DetectionServiceError(service, f"HTTP {error.code}") from error
        except (json.JSONDecodeError, UnicodeDecodeError) as error:
            logger.warning("%s returned a non-JSON body: %s", service, error)
            return []
        except (URLError, OSError, http.client.HTTPException) as error:
            raise DetectionServiceError(service, str(error)) from error
        return parse(payload)
