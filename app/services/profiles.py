"""Profile records: plan, subscription and daily usage.

Rows enter the application through ``to_profile`` which validates them as a
discriminated union on ``plan``; a paid profile must say how it is billed.
Usage writes are conditional on the ``version`` column so the foreground
increment and the background reset never overwrite each other.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from sqlalchemy import func, update

from app import db as db_module
from app.config import Settings
from app.models import Profile

settings = Settings()
logger = logging.getLogger(__name__)


class _ProfileBase(BaseModel):
    id: str
    email: str | None = None
    full_name: str = ""
    subscription_status: str | None = None
    usage_count: int = Field(0, ge=0)
    usage_limit: int = Field(5, gt=0)
    last_extraction: datetime | None = None
    version: int = 0


class FreeProfile(_ProfileBase):
    plan: Literal["free"] = "free"
    billing_interval: None = None


class PaidProfile(_ProfileBase):
    plan: Literal["paid"]
    billing_interval: Literal["month", "year"]


UsageProfile = Annotated[Union[FreeProfile, PaidProfile], Field(discriminator="plan")]
_profile_adapter: TypeAdapter = TypeAdapter(UsageProfile)


def _ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_profile(row: Profile) -> FreeProfile | PaidProfile:
    plan = row.plan or "free"
    return _profile_adapter.validate_python(
        {
            "id": row.id,
            "email": row.email,
            "full_name": row.full_name or "",
            "plan": plan,
            "subscription_status": row.subscription_status,
            # a lapsed subscription can leave the interval behind on a free row
            "billing_interval": row.billing_interval if plan == "paid" else None,
            "usage_count": row.usage_count or 0,
            "usage_limit": row.usage_limit,
            "last_extraction": _ensure_utc(row.last_extraction),
            "version": row.version or 0,
        }
    )


def get_profile_sync(user_id: str) -> FreeProfile | PaidProfile | None:
    with db_module.SessionLocal() as db:
        row = db.get(Profile, user_id)
        return to_profile(row) if row else None


def ensure_profile_sync(
    user_id: str,
    email: str | None = None,
    full_name: str = "",
    usage_limit: int | None = None,
) -> FreeProfile | PaidProfile:
    """Return the profile, inserting a free one on first sign-in."""
    with db_module.SessionLocal() as db:
        row = db.get(Profile, user_id)
        if row is None:
            row = Profile(
                id=user_id,
                email=email,
                full_name=full_name or "",
                plan="free",
                usage_count=0,
                usage_limit=usage_limit or settings.default_usage_limit,
                version=0,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("Created profile", extra={"user_id": user_id})
        return to_profile(row)


def _conditional_update(
    user_id: str, expected_version: int, values: dict
) -> FreeProfile | PaidProfile | None:
    with db_module.SessionLocal() as db:
        result = db.execute(
            update(Profile)
            .where(Profile.id == user_id, Profile.version == expected_version)
            .values(version=Profile.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount == 0:
            return None
        row = db.get(Profile, user_id)
        return to_profile(row) if row else None


def record_extraction_sync(
    user_id: str, *, expected_version: int, usage_count: int, now: datetime
) -> FreeProfile | PaidProfile | None:
    """Write the new count and timestamp; None when the row moved underneath."""
    return _conditional_update(
        user_id,
        expected_version,
        {"usage_count": usage_count, "last_extraction": _ensure_utc(now)},
    )


def reset_usage_sync(
    user_id: str, *, expected_version: int
) -> FreeProfile | PaidProfile | None:
    return _conditional_update(user_id, expected_version, {"usage_count": 0})


def list_profiles_with_usage_sync() -> list[FreeProfile | PaidProfile]:
    with db_module.SessionLocal() as db:
        rows = db.query(Profile).filter(Profile.usage_count > 0).all()
        return [to_profile(row) for row in rows]


def count_profiles_sync(since: datetime | None = None) -> int:
    with db_module.SessionLocal() as db:
        query = db.query(func.count(Profile.id))
        if since is not None:
            query = query.filter(Profile.last_extraction >= since)
        return query.scalar() or 0


class ProfileStore:
    """Async facade over the blocking queries, injected into sessions."""

    async def get(self, user_id: str) -> FreeProfile | PaidProfile | None:
        return await asyncio.to_thread(get_profile_sync, user_id)

    async def ensure(
        self, user_id: str, email: str | None = None, full_name: str = ""
    ) -> FreeProfile | PaidProfile:
        return await asyncio.to_thread(ensure_profile_sync, user_id, email, full_name)

    async def record_extraction(
        self, user_id: str, *, expected_version: int, usage_count: int, now: datetime
    ) -> FreeProfile | PaidProfile | None:
        return await asyncio.to_thread(
            record_extraction_sync,
            user_id,
            expected_version=expected_version,
            usage_count=usage_count,
            now=now,
        )

    async def reset_usage(
        self, user_id: str, *, expected_version: int
    ) -> FreeProfile | PaidProfile | None:
        return await asyncio.to_thread(
            reset_usage_sync, user_id, expected_version=expected_version
        )


__all__ = [
    "FreeProfile",
    "PaidProfile",
    "UsageProfile",
    "to_profile",
    "get_profile_sync",
    "ensure_profile_sync",
    "record_extraction_sync",
    "reset_usage_sync",
    "list_profiles_with_usage_sync",
    "count_profiles_sync",
    "ProfileStore",
]
