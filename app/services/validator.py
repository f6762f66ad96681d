from __future__ import annotations

from typing import Iterable, NamedTuple

from app.config import Settings
from app.metrics import validation_reject_total
from app.services.errors import FileRejected, RejectReason
from app.services.handles import Handle

settings = Settings()


class VideoCandidate(NamedTuple):
    """What is known about a file before it is accepted."""

    name: str
    content_type: str
    size: int


class SelectedVideo(NamedTuple):
    handle: Handle
    name: str
    content_type: str
    size: int


def validate_type(
    content_type: str | None, allowed: Iterable[str] | None = None
) -> None:
    allowed = list(allowed) if allowed is not None else settings.allowed_video_types
    if (content_type or "").lower() not in allowed:
        validation_reject_total.labels(reason=RejectReason.INVALID_TYPE.value).inc()
        raise FileRejected(
            RejectReason.INVALID_TYPE, "Please upload an MP4 or MOV file"
        )


def validate_size(size: int, max_bytes: int | None = None) -> None:
    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes
    if size > limit:
        validation_reject_total.labels(reason=RejectReason.TOO_LARGE.value).inc()
        mb = limit // (1024 * 1024)
        raise FileRejected(RejectReason.TOO_LARGE, f"Maximum file size is {mb}MB")


def validate_file(
    candidate: VideoCandidate,
    *,
    allowed: Iterable[str] | None = None,
    max_bytes: int | None = None,
) -> VideoCandidate:
    """Accept an MP4/MOV no larger than the configured cap, or raise FileRejected."""
    validate_type(candidate.content_type, allowed)
    validate_size(candidate.size, max_bytes)
    return candidate


__all__ = [
    "VideoCandidate",
    "SelectedVideo",
    "validate_type",
    "validate_size",
    "validate_file",
]
