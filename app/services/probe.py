"""Read duration and resolution from a local video without uploading it.

ffprobe only parses the container header and stream info, so this stays
cheap even for large files.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
from typing import NamedTuple

from app.config import Settings
from app.metrics import probe_fail_total
from app.services.errors import ProbeFailed
from app.services.handles import HandleRegistry
from app.services.validator import SelectedVideo

settings = Settings()
logger = logging.getLogger(__name__)


class VideoMetadata(NamedTuple):
    duration: int
    resolution: str

    @property
    def summary(self) -> str:
        return f"{self.duration}s, {self.resolution}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_ffprobe_output(raw: bytes | str) -> VideoMetadata:
    try:
        payload = json.loads(raw)
        stream = payload["streams"][0]
        width = int(stream["width"])
        height = int(stream["height"])
        duration = float(payload["format"]["duration"])
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise ProbeFailed("The video metadata could not be read") from exc
    return VideoMetadata(
        duration=_round_half_up(duration), resolution=f"{width}x{height}"
    )


async def _run_ffprobe(path: str, ffprobe_bin: str) -> bytes:
    proc = await asyncio.create_subprocess_exec(
        ffprobe_bin,
        "-v",
        "error",
        "-select_streams",
        "v:0",
        "-show_entries",
        "stream=width,height:format=duration",
        "-of",
        "json",
        path,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    if proc.returncode != 0:
        logger.warning("ffprobe exited with %s: %s", proc.returncode, stderr.decode(errors="replace"))
        raise ProbeFailed("The video metadata could not be read")
    return stdout


async def probe_video(
    video: SelectedVideo,
    registry: HandleRegistry,
    *,
    ffprobe_bin: str | None = None,
    timeout: float | None = None,
) -> VideoMetadata:
    """Return rounded duration and WIDTHxHEIGHT for an accepted upload.

    The probe works on its own alias of the file, released before returning,
    so the session's handle is left untouched.
    """
    if video.handle.path is None:
        raise ProbeFailed("The video metadata could not be read")
    probe_handle = registry.create_from_path(
        video.handle.path, video.content_type, owns=False
    )
    try:
        raw = await asyncio.wait_for(
            _run_ffprobe(str(probe_handle.path), ffprobe_bin or settings.ffprobe_bin),
            timeout=timeout if timeout is not None else settings.probe_timeout_s,
        )
        return parse_ffprobe_output(raw)
    except asyncio.TimeoutError as exc:
        probe_fail_total.inc()
        raise ProbeFailed("Reading the video took too long") from exc
    except OSError as exc:
        # missing or non-executable binary, unreadable file
        probe_fail_total.inc()
        logger.error("ffprobe could not run: %s", exc)
        raise ProbeFailed("The video metadata could not be read") from exc
    except ProbeFailed:
        probe_fail_total.inc()
        raise
    finally:
        registry.revoke(probe_handle)


__all__ = ["VideoMetadata", "parse_ffprobe_output", "probe_video"]
