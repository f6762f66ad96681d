from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import NamedTuple

from app.services.errors import Notice
from app.services.handles import Handle, HandleRegistry

IOS_PATTERN = re.compile(r"iPad|iPhone|iPod")

IOS_NOTICE = Notice(
    title="iOS Device Detected",
    description="Press and hold the image above, then select 'Save to Photos'.",
)


class Handoff(NamedTuple):
    filename: str
    content: bytes
    content_type: str
    # attachment: browser saves the file; inline: shown for long-press / share
    disposition: str
    notice: Notice | None
    reset: bool


def is_ios(user_agent: str | None) -> bool:
    return bool(user_agent) and IOS_PATTERN.search(user_agent) is not None


def frame_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"floframe-{int(now.timestamp() * 1000)}.png"


def prepare_handoff(
    result: Handle,
    registry: HandleRegistry,
    user_agent: str | None,
    now: datetime | None = None,
) -> Handoff:
    """Decide how the frame reaches the user.

    iOS Safari ignores download links for blobs, so there the image is kept
    on screen and the session is left alone; everywhere else the caller
    resets the session once the bytes are sent.
    """
    content = registry.read(result)
    filename = frame_filename(now)
    if is_ios(user_agent):
        return Handoff(
            filename=filename,
            content=content,
            content_type=result.content_type,
            disposition="inline",
            notice=IOS_NOTICE,
            reset=False,
        )
    return Handoff(
        filename=filename,
        content=content,
        content_type=result.content_type,
        disposition="attachment",
        notice=None,
        reset=True,
    )


__all__ = ["IOS_NOTICE", "Handoff", "is_ios", "frame_filename", "prepare_handoff"]
