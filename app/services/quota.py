"""Daily extraction allowance.

The default policy is a rolling window: the count held on the profile is
only meaningful for ``QUOTA_WINDOW_H`` hours after ``last_extraction``;
past that it is treated as zero. ``QUOTA_RESET_POLICY=midnight`` switches
to calendar days in ``QUOTA_TIMEZONE`` instead.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import NamedTuple, Protocol
from zoneinfo import ZoneInfo

from app.config import Settings
from app.metrics import usage_reset_total
from app.services.errors import QuotaExceeded

settings = Settings()
logger = logging.getLogger(__name__)

ROLLING = "rolling"
MIDNIGHT = "midnight"


class QuotaDecision(NamedTuple):
    allowed: bool
    effective_count: int
    usage_limit: int
    next_reset: datetime | None

    @property
    def remaining(self) -> int:
        return max(self.usage_limit - self.effective_count, 0)


class _UsageFields(Protocol):
    id: str
    usage_count: int
    usage_limit: int
    last_extraction: datetime | None
    version: int


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _local_tz(tz: tzinfo | None) -> tzinfo:
    return tz or ZoneInfo(settings.quota_timezone)


def window_expired(
    last: datetime | None,
    now: datetime,
    *,
    policy: str | None = None,
    window: timedelta | None = None,
    tz: tzinfo | None = None,
) -> bool:
    if last is None:
        return True
    policy = policy or settings.quota_reset_policy
    if policy == MIDNIGHT:
        zone = _local_tz(tz)
        return _utc(last).astimezone(zone).date() != _utc(now).astimezone(zone).date()
    window = window or timedelta(hours=settings.quota_window_h)
    return _utc(now) - _utc(last) >= window


def next_reset_at(
    last: datetime | None,
    now: datetime,
    *,
    policy: str | None = None,
    window: timedelta | None = None,
    tz: tzinfo | None = None,
) -> datetime | None:
    policy = policy or settings.quota_reset_policy
    if policy == MIDNIGHT:
        zone = _local_tz(tz)
        local_now = _utc(now).astimezone(zone)
        midnight = datetime(
            local_now.year, local_now.month, local_now.day, tzinfo=zone
        ) + timedelta(days=1)
        return midnight.astimezone(timezone.utc)
    if last is None:
        return None
    return _utc(last) + (window or timedelta(hours=settings.quota_window_h))


def can_extract(
    profile: _UsageFields,
    now: datetime,
    *,
    policy: str | None = None,
    window: timedelta | None = None,
    tz: tzinfo | None = None,
) -> QuotaDecision:
    """Decide whether one more extraction fits in the current window."""
    last = profile.last_extraction
    if window_expired(last, now, policy=policy, window=window, tz=tz):
        effective = 0
    else:
        effective = profile.usage_count
    return QuotaDecision(
        allowed=effective < profile.usage_limit,
        effective_count=effective,
        usage_limit=profile.usage_limit,
        next_reset=next_reset_at(last, now, policy=policy, window=window, tz=tz),
    )


def format_reset_time(value: datetime | None, tz: tzinfo | None = None) -> str:
    if value is None:
        return "now"
    return _utc(value).astimezone(_local_tz(tz)).strftime("%I:%M %p")


def limit_reached(decision: QuotaDecision, tz: tzinfo | None = None) -> QuotaExceeded:
    return QuotaExceeded(
        "You have used all free extractions for today. "
        f"Come again at {format_reset_time(decision.next_reset, tz)}."
    )


class UsageStore(Protocol):
    async def get(self, user_id: str): ...

    async def record_extraction(
        self, user_id: str, *, expected_version: int, usage_count: int, now: datetime
    ): ...

    async def reset_usage(self, user_id: str, *, expected_version: int): ...


async def consume_unit(store: UsageStore, user_id: str, now: datetime, **policy):
    """Count one successful extraction against the window.

    Best effort: a lost race is retried once, any other failure is logged
    and the caller keeps its result.
    """
    for _ in range(2):
        try:
            profile = await store.get(user_id)
            if profile is None:
                logger.warning("No profile to record usage", extra={"user_id": user_id})
                return None
            decision = can_extract(profile, now, **policy)
            updated = await store.record_extraction(
                user_id,
                expected_version=profile.version,
                usage_count=decision.effective_count + 1,
                now=now,
            )
        except Exception:
            logger.exception("Usage update failed", extra={"user_id": user_id})
            return None
        if updated is not None:
            return updated
        logger.info("Usage write raced, retrying", extra={"user_id": user_id})
    logger.warning("Usage write lost twice, counter stale", extra={"user_id": user_id})
    return None


async def reconcile_profile(store: UsageStore, profile: _UsageFields, now: datetime, **policy):
    """Zero the stored count once its window has passed."""
    if profile.usage_count <= 0:
        return None
    if not window_expired(profile.last_extraction, now, **policy):
        return None
    updated = await store.reset_usage(
        profile.id, expected_version=profile.version
    )
    if updated is not None:
        usage_reset_total.inc()
        logger.info("Usage window reset", extra={"user_id": profile.id})
    return updated


__all__ = [
    "ROLLING",
    "MIDNIGHT",
    "QuotaDecision",
    "window_expired",
    "next_reset_at",
    "can_extract",
    "format_reset_time",
    "limit_reached",
    "consume_unit",
    "reconcile_profile",
]
