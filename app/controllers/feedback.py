from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.dependencies import (
    CurrentUser,
    ErrorResponse,
    error_response,
    get_sessions,
    http_error,
    require_user,
)
from app.models import ErrorCode
from app.services.feedback import (
    add_feedback_sync,
    add_like_sync,
    admin_stats_sync,
    has_liked_sync,
    notify_feedback,
)
from app.services.sessions import SessionManager

logger = logging.getLogger(__name__)

MAX_FEEDBACK_LEN = 5000

router = APIRouter()


class LikeResponse(BaseModel):
    liked: bool


class FeedbackRequest(BaseModel):
    message: str


class FeedbackResponse(BaseModel):
    id: int
    title: str = "Thank you!"
    description: str = "Your feedback helps us improve."


class StatsResponse(BaseModel):
    total_users: int
    total_likes: int
    total_feedback: int
    today_users: int
    active_today: int
    generated_at: datetime


def _email(user: CurrentUser, sessions: SessionManager) -> str | None:
    return user.email or sessions.email_for(user.id)


@router.get("/likes", response_model=LikeResponse)
async def get_like(user: CurrentUser = Depends(require_user)):
    return LikeResponse(liked=await asyncio.to_thread(has_liked_sync, user.id))


@router.post("/likes", response_model=LikeResponse)
async def like(
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    email = _email(user, sessions)
    created = await asyncio.to_thread(add_like_sync, user.id, email)
    if created:
        await notify_feedback("like", user.id, email)
    return LikeResponse(liked=True)


@router.post(
    "/feedback",
    status_code=201,
    response_model=FeedbackResponse,
    responses={400: {"model": ErrorResponse}},
)
async def send_feedback(
    body: FeedbackRequest,
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    message = body.message.strip()
    if not message:
        return error_response(
            400, ErrorCode.BAD_REQUEST, "Empty feedback", "Tell us what you think first"
        )
    if len(message) > MAX_FEEDBACK_LEN:
        return error_response(
            400,
            ErrorCode.BAD_REQUEST,
            "Feedback too long",
            f"Please keep it under {MAX_FEEDBACK_LEN} characters",
        )
    email = _email(user, sessions)
    feedback_id = await asyncio.to_thread(add_feedback_sync, user.id, email, message)
    await notify_feedback("feedback", user.id, email, message)
    return FeedbackResponse(id=feedback_id)


@router.get(
    "/admin/stats",
    response_model=StatsResponse,
    responses={403: {"model": ErrorResponse}},
)
async def admin_stats(
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    if not sessions.is_admin(_email(user, sessions)):
        raise http_error(403, ErrorCode.FORBIDDEN, "Forbidden", "Admins only")
    stats = await asyncio.to_thread(admin_stats_sync)
    return StatsResponse(**stats, generated_at=datetime.now(timezone.utc))
