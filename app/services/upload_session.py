"""One user's upload → extraction → handoff cycle.

States::

    idle → selected → uploading → awaiting_extraction → extracting → ready
                                                    ↘               ↘ failed

Every new attempt (file selection, retry, reset) bumps ``generation``.
Anything that completes after its generation is gone is discarded, so a
late answer for an old file never lands on the new one. The extraction
latch is cleared only by a new attempt; re-evaluating ``maybe_extract``
while it is set is a no-op.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from app.config import Settings
from app.metrics import quota_reject_total
from app.services import extraction as extraction_service
from app.services import probe as probe_service
from app.services.errors import (
    ExtractionFailed,
    HandleError,
    NoResult,
    Notice,
    ProbeFailed,
)
from app.services.handles import Handle, HandleRegistry
from app.services.handoff import Handoff, prepare_handoff
from app.services.probe import VideoMetadata
from app.services.progress import COMPLETE, ProgressTimer
from app.services.quota import can_extract, consume_unit, limit_reached
from app.services.validator import SelectedVideo

logger = logging.getLogger(__name__)

Prober = Callable[[SelectedVideo, HandleRegistry], Awaitable[VideoMetadata]]
Extractor = Callable[[SelectedVideo, HandleRegistry], Awaitable[bytes]]


class SessionState(str, Enum):
    IDLE = "idle"
    SELECTED = "selected"
    UPLOADING = "uploading"
    AWAITING_EXTRACTION = "awaiting_extraction"
    EXTRACTING = "extracting"
    READY = "ready"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadSession:
    def __init__(
        self,
        user_id: str,
        *,
        registry: HandleRegistry,
        store: Any,
        settings: Settings | None = None,
        prober: Prober | None = None,
        extractor: Extractor | None = None,
        clock: Callable[[], datetime] | None = None,
        quota_enforced: bool | None = None,
    ) -> None:
        self.user_id = user_id
        self.registry = registry
        self.store = store
        self._settings = settings or Settings()
        self._prober = prober or probe_service.probe_video
        self._extractor = extractor or extraction_service.extract_last_frame
        self._clock = clock or _utcnow
        self.quota_enforced = (
            self._settings.quota_enforced if quota_enforced is None else quota_enforced
        )
        self._quota_policy = {
            "policy": self._settings.quota_reset_policy,
            "window": timedelta(hours=self._settings.quota_window_h),
            "tz": ZoneInfo(self._settings.quota_timezone),
        }

        self.state = SessionState.IDLE
        self.video: SelectedVideo | None = None
        self.metadata: VideoMetadata | None = None
        self.progress = 0
        self.result: Handle | None = None
        self.notice: Notice | None = None
        self.generation = 0

        self._latched = False
        self._timer: ProgressTimer | None = None
        self._in_flight: dict[int, asyncio.Task] = {}

    @property
    def processing(self) -> bool:
        return self.generation in self._in_flight

    def _log_extra(self) -> dict:
        return {
            "user_id": self.user_id,
            "generation": self.generation,
            "state": self.state.value,
        }

    def _release_current(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.result is not None:
            self.registry.revoke(self.result)
            self.result = None
        if self.video is not None:
            self.registry.revoke(self.video.handle)
            self.video = None
        self.metadata = None
        self.progress = 0
        self.notice = None

    def _new_attempt(self) -> int:
        self.generation += 1
        self._latched = False
        return self.generation

    async def select_file(self, video: SelectedVideo) -> VideoMetadata:
        """Take ownership of an accepted file, probe it, start progress."""
        self._release_current()
        generation = self._new_attempt()
        self.video = video
        self.state = SessionState.SELECTED
        logger.info("File selected", extra=self._log_extra())

        try:
            metadata = await asyncio.wait_for(
                self._prober(video, self.registry),
                timeout=self._settings.probe_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            self._abandon_probe(generation, ProbeFailed("Reading the video took too long"))
            raise ProbeFailed("Reading the video took too long") from exc
        except ProbeFailed as exc:
            self._abandon_probe(generation, exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected probe error", extra=self._log_extra())
            error = ProbeFailed("The video metadata could not be read")
            self._abandon_probe(generation, error)
            raise error from exc

        if generation != self.generation:
            logger.info("Probe finished for a superseded file", extra=self._log_extra())
            return metadata

        self.metadata = metadata
        self.state = SessionState.UPLOADING
        logger.info("Probed %s", metadata.summary, extra=self._log_extra())
        self.progress = 0
        self.notice = Notice(
            title="Video uploaded",
            description=f"Duration: {metadata.duration}s, Resolution: {metadata.resolution}",
        )
        self._timer = ProgressTimer(
            partial(self._on_progress, generation),
            partial(self._on_progress_complete, generation),
            step=self._settings.progress_step,
            interval=self._settings.progress_interval_ms / 1000,
        )
        self._timer.start()
        return metadata

    def _abandon_probe(self, generation: int, error: ProbeFailed) -> None:
        if generation != self.generation:
            return
        self._release_current()
        self.state = SessionState.IDLE
        self.notice = error.notice
        logger.warning("Probe failed", extra=self._log_extra())

    def _on_progress(self, generation: int, value: int) -> None:
        if generation == self.generation:
            self.progress = value

    async def _on_progress_complete(self, generation: int) -> None:
        if generation != self.generation:
            return
        self.state = SessionState.AWAITING_EXTRACTION
        self.maybe_extract()

    def maybe_extract(self) -> asyncio.Task | None:
        """Start the extraction call if, and only if, this attempt needs one."""
        if self.video is None or self.progress != COMPLETE:
            return None
        if self.result is not None or self.processing or self._latched:
            return None
        self._latched = True
        generation = self.generation
        task = asyncio.create_task(self._extract(generation, self.video))
        self._in_flight[generation] = task
        task.add_done_callback(lambda _t, g=generation: self._in_flight.pop(g, None))
        return task

    async def _extract(self, generation: int, video: SelectedVideo) -> None:
        if self.quota_enforced:
            try:
                profile = await self.store.get(self.user_id)
            except Exception:
                logger.exception("Profile read failed", extra=self._log_extra())
                profile = None
            if profile is None:
                logger.error("Profile missing at extraction", extra=self._log_extra())
                if generation == self.generation:
                    self.state = SessionState.FAILED
                    self.notice = ExtractionFailed(
                        "Your usage could not be checked. Please sign in again."
                    ).notice
                return
            decision = can_extract(profile, self._clock(), **self._quota_policy)
            if not decision.allowed:
                quota_reject_total.inc()
                if generation == self.generation:
                    self.state = SessionState.FAILED
                    self.notice = limit_reached(
                        decision, self._quota_policy["tz"]
                    ).notice
                    logger.info("Quota denied extraction", extra=self._log_extra())
                return

        if generation != self.generation:
            return
        self.state = SessionState.EXTRACTING
        try:
            content = await self._extractor(video, self.registry)
        except ExtractionFailed as exc:
            if generation == self.generation:
                self.state = SessionState.FAILED
                self.notice = exc.notice
            return
        except HandleError:
            if generation == self.generation:
                raise
            logger.info("Upload superseded before sending", extra=self._log_extra())
            return
        except Exception:
            logger.exception("Unexpected extraction error", extra=self._log_extra())
            if generation == self.generation:
                self.state = SessionState.FAILED
                self.notice = ExtractionFailed(
                    "The frame could not be extracted. Please try again."
                ).notice
            return

        if generation != self.generation:
            # never delivered, so never charged
            logger.info("Discarding frame for a superseded file", extra=self._log_extra())
            return

        self.result = self.registry.create_from_bytes(content, "image/png")
        self.state = SessionState.READY
        self.notice = None
        logger.info("Frame ready", extra=self._log_extra())
        if self.quota_enforced:
            await consume_unit(
                self.store, self.user_id, self._clock(), **self._quota_policy
            )

    def retry(self) -> asyncio.Task | None:
        """New extraction attempt on the file that is still held after a failure."""
        if self.state != SessionState.FAILED or self.video is None:
            return None
        if self.progress != COMPLETE:
            return None
        self._new_attempt()
        self.notice = None
        self.state = SessionState.AWAITING_EXTRACTION
        return self.maybe_extract()

    def reset(self) -> None:
        self._release_current()
        self._new_attempt()
        self.state = SessionState.IDLE

    def result_bytes(self) -> bytes:
        if self.result is None:
            raise NoResult("There is no extracted frame yet")
        return self.registry.read(self.result)

    def download(self, user_agent: str | None) -> Handoff:
        if self.state != SessionState.READY or self.result is None:
            raise NoResult("There is no extracted frame yet")
        handoff = prepare_handoff(self.result, self.registry, user_agent, self._clock())
        if handoff.reset:
            self.reset()
        else:
            self.notice = handoff.notice
        return handoff

    async def settle(self) -> None:
        """Wait for the running timer and any extraction it started."""
        if self._timer is not None:
            await self._timer.wait()
        pending = list(self._in_flight.values())
        if pending:
            await asyncio.gather(*pending)

    async def close(self, *, cancel_in_flight: bool = False) -> None:
        """Tear down on sign-out; in-flight calls finish as stale unless cancelled."""
        self.reset()
        if cancel_in_flight:
            pending = list(self._in_flight.values())
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "progress": self.progress,
            "processing": self.processing,
            "generation": self.generation,
            "video": (
                {
                    "name": self.video.name,
                    "size": self.video.size,
                    "content_type": self.video.content_type,
                }
                if self.video
                else None
            ),
            "metadata": (
                {
                    "duration": self.metadata.duration,
                    "resolution": self.metadata.resolution,
                }
                if self.metadata
                else None
            ),
            "has_result": self.result is not None,
            "notice": self.notice.model_dump() if self.notice else None,
        }


__all__ = ["SessionState", "UploadSession"]
