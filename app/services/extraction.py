from __future__ import annotations

import logging
import time

import httpx

from app.config import Settings
from app.metrics import (
    extraction_fail_total,
    extraction_latency_seconds,
    extraction_requests_total,
)
from app.services.errors import ExtractionFailed
from app.services.handles import HandleRegistry
from app.services.validator import SelectedVideo

settings = Settings()
logger = logging.getLogger(__name__)

EXTRACT_PATH = "/api/extract-last-frame"


def extraction_url(base_url: str | None = None) -> str:
    base = base_url or settings.extraction_api_url
    return f"{base.rstrip('/')}{EXTRACT_PATH}"


async def extract_last_frame(
    video: SelectedVideo,
    registry: HandleRegistry,
    *,
    base_url: str | None = None,
    timeout: float | None = None,
) -> bytes:
    """POST the video as multipart field ``video`` and return the PNG body."""
    extraction_requests_total.inc()
    url = extraction_url(base_url)
    start = time.perf_counter()
    try:
        with registry.open(video.handle) as fh:
            files = {"video": (video.name, fh, video.content_type)}
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    url,
                    files=files,
                    timeout=timeout if timeout is not None else settings.extraction_timeout_s,
                )
    except httpx.HTTPError as exc:
        extraction_fail_total.inc()
        logger.error("Extraction request failed: %s", exc)
        raise ExtractionFailed("The frame could not be extracted. Please try again.") from exc
    finally:
        extraction_latency_seconds.observe(time.perf_counter() - start)

    if resp.status_code < 200 or resp.status_code >= 300:
        extraction_fail_total.inc()
        logger.warning("Extraction service answered %s", resp.status_code)
        raise ExtractionFailed("The frame could not be extracted. Please try again.")
    if not resp.content:
        extraction_fail_total.inc()
        logger.warning("Extraction service returned an empty body")
        raise ExtractionFailed("The frame could not be extracted. Please try again.")
    return resp.content


__all__ = ["EXTRACT_PATH", "extraction_url", "extract_last_frame"]
