from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from app.config import Settings
from app.db import init_db
from app.services.profiles import ProfileStore, list_profiles_with_usage_sync
from app.services.quota import reconcile_profile, window_expired


async def run(settings: Settings, *, dry_run: bool = False, now: datetime | None = None) -> int:
    """Zero usage counters whose window has passed. Returns how many were reset."""
    now = now or datetime.now(timezone.utc)
    policy = {
        "policy": settings.quota_reset_policy,
        "window": timedelta(hours=settings.quota_window_h),
        "tz": ZoneInfo(settings.quota_timezone),
    }
    store = ProfileStore()
    profiles = await asyncio.to_thread(list_profiles_with_usage_sync)
    resets = 0
    for profile in profiles:
        if dry_run:
            if window_expired(profile.last_extraction, now, **policy):
                print(f"[dry-run] reset user={profile.id} count={profile.usage_count}")
                resets += 1
            continue
        if await reconcile_profile(store, profile, now, **policy):
            resets += 1
    return resets


async def main() -> None:
    parser = argparse.ArgumentParser(description="Reset expired daily usage windows.")
    parser.add_argument("--dry-run", action="store_true", help="List only, do not write")
    args = parser.parse_args()

    settings = Settings()
    init_db(settings)
    resets = await run(settings, dry_run=args.dry_run)
    print(f"reset {resets} profile(s)")


if __name__ == "__main__":
    asyncio.run(main())
