from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.config import Settings
from app.dependencies import CurrentUser, ErrorResponse, http_error, get_sessions, require_user
from app.models import ErrorCode
from app.services.quota import can_extract, format_reset_time
from app.services.sessions import SessionManager

settings = Settings()

router = APIRouter()


class UsageResponse(BaseModel):
    plan: str
    usage_count: int
    usage_limit: int
    remaining: int
    allowed: bool
    next_reset: datetime | None = None
    next_reset_local: str | None = None


class SubscriptionResponse(BaseModel):
    plan: str
    subscription_status: str | None = None
    billing_interval: str | None = None


async def _load_profile(user: CurrentUser, sessions: SessionManager):
    profile = await sessions.store.get(user.id)
    if profile is None:
        raise http_error(404, ErrorCode.NOT_SIGNED_IN, "No profile", "Sign in to create your profile")
    return profile


@router.get("/usage", response_model=UsageResponse, responses={404: {"model": ErrorResponse}})
async def usage(
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    profile = await _load_profile(user, sessions)
    tz = ZoneInfo(settings.quota_timezone)
    decision = can_extract(
        profile,
        datetime.now(timezone.utc),
        policy=settings.quota_reset_policy,
        window=timedelta(hours=settings.quota_window_h),
        tz=tz,
    )
    return UsageResponse(
        plan=profile.plan,
        usage_count=decision.effective_count,
        usage_limit=decision.usage_limit,
        remaining=decision.remaining,
        allowed=decision.allowed,
        next_reset=decision.next_reset,
        next_reset_local=(
            format_reset_time(decision.next_reset, tz) if decision.next_reset else None
        ),
    )


@router.get(
    "/subscription",
    response_model=SubscriptionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def subscription(
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    profile = await _load_profile(user, sessions)
    return SubscriptionResponse(
        plan=profile.plan,
        subscription_status=profile.subscription_status,
        billing_interval=profile.billing_interval,
    )
