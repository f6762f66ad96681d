from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

from app.config import Settings
from app.services.errors import ExtractionFailed
from app.services.handles import HandleRegistry
from app.services.probe import VideoMetadata
from app.services.profiles import FreeProfile
from app.services.validator import SelectedVideo

PNG = b"\x89PNG\r\n\x1a\nlast-frame"


def fast_settings(**overrides) -> Settings:
    values = {
        "progress_interval_ms": 0,
        "probe_timeout_s": 1.0,
        "quota_enforced": True,
        "quota_reset_policy": "rolling",
        "quota_timezone": "UTC",
        "admin_email": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_video(
    registry: HandleRegistry,
    tmp_path: Path,
    name: str = "clip.mp4",
    content_type: str = "video/mp4",
    payload: bytes = b"\x00\x00\x00\x18ftypmp42",
) -> SelectedVideo:
    path = tmp_path / name
    path.write_bytes(payload)
    handle = registry.create_from_path(path, content_type)
    return SelectedVideo(handle=handle, name=name, content_type=content_type, size=len(payload))


class FakeStore:
    """In-memory profile store with the same conditional-write contract."""

    def __init__(self, *profiles):
        self.profiles = {p.id: p for p in profiles}
        self.fail_reads = False
        self.fail_writes = False
        self.lose_races = 0
        self.writes: list[tuple[str, int, datetime]] = []
        self.resets: list[str] = []

    async def get(self, user_id):
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        return self.profiles.get(user_id)

    async def ensure(self, user_id, email=None, full_name=""):
        if user_id not in self.profiles:
            self.profiles[user_id] = FreeProfile(id=user_id, email=email, full_name=full_name)
        return self.profiles[user_id]

    async def record_extraction(self, user_id, *, expected_version, usage_count, now):
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        profile = self.profiles.get(user_id)
        if self.lose_races:
            self.lose_races -= 1
            # another writer got there first
            self.profiles[user_id] = profile.model_copy(update={"version": profile.version + 1})
            return None
        if profile is None or profile.version != expected_version:
            return None
        updated = profile.model_copy(
            update={
                "usage_count": usage_count,
                "last_extraction": now,
                "version": profile.version + 1,
            }
        )
        self.profiles[user_id] = updated
        self.writes.append((user_id, usage_count, now))
        return updated

    async def reset_usage(self, user_id, *, expected_version):
        profile = self.profiles.get(user_id)
        if profile is None or profile.version != expected_version:
            return None
        updated = profile.model_copy(
            update={"usage_count": 0, "version": profile.version + 1}
        )
        self.profiles[user_id] = updated
        self.resets.append(user_id)
        return updated


class FakeProber:
    def __init__(self, metadata=VideoMetadata(12, "1920x1080"), error=None, delay=0.0):
        self.metadata = metadata
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def __call__(self, video, registry):
        self.calls.append(video.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.metadata


class FakeExtractor:
    """Counts calls; ``gate`` holds each call until the test releases it."""

    def __init__(self, content=PNG, failures=0, gate: asyncio.Event | None = None):
        self.content = content
        self.failures = failures
        self.gate = gate
        self.calls: list[str] = []

    async def __call__(self, video, registry):
        self.calls.append(video.name)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise ExtractionFailed("The frame could not be extracted. Please try again.")
        return self.content
