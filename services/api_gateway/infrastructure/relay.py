"""Relay to the upstream detector endpoints and connectivity self-test."""

from __future__ import annotations

import http.client
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError

from libs.core.application.payloads import build_request_body
from libs.core.domain.errors import DetectionServiceError
from libs.infra.http import transport

logger = logging.getLogger(__name__)

# 1x1 transparent PNG
SELF_TEST_IMAGE_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@dataclass
class ProbeResult:
    """Outcome of one upstream connectivity probe."""

    ok: bool
    status: int | None
    detail: str | None


def forward(
    service: str,
    url: str,
    body: dict[str, Any],
    token: str,
    timeout: float,
) -> Any:
    try:
        return transport.post_json(
            url, body, headers=transport.bearer_headers(token), timeout=timeout
        )
    except HTTPError as error:
        raise DetectionServiceError(service, f"upstream HTTP {error.code}") from error
    except (URLError, OSError, ValueError, http.client.HTTPException) as error:
        raise DetectionServiceError(service, str(error)) from error


def probe(url: str, token: str, timeout: float) -> ProbeResult:
    try:
        transport.post_json(
            url,
            build_request_body(SELF_TEST_IMAGE_B64),
            headers=transport.bearer_headers(token),
            timeout=timeout,
        )
    except HTTPError as error:
        return ProbeResult(ok=False, status=error.code, detail=str(error.reason))
    except (URLError, OSError, ValueError, http.client.HTTPException) as error:
        return ProbeResult(ok=False, status=None, detail=str(error))
    return ProbeResult(ok=True, status=200, detail=None)


def self_test(
    person_url: str,
    ppe_url: str,
    token: str,
    timeout: float,
) -> dict[str, ProbeResult]:
    with ThreadPoolExecutor(max_workers=2) as executor:
        person_future = executor.submit(probe, person_url, token, timeout)
        ppe_future = executor.submit(probe, ppe_url, token, timeout)
        results = {"person": person_future.result(), "ppe": ppe_future.result()}
    logger.info(
        "self-test person=%s ppe=%s", results["person"].ok, results["ppe"].ok
    )
    return results
