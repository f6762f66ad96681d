from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app import db as db_module
from app.config import Settings
from app.models import AppFeedback, AppLike, Profile
from app.services.profiles import count_profiles_sync

settings = Settings()
logger = logging.getLogger(__name__)

FEEDBACK_FUNCTION_PATH = "/functions/v1/send-feedback-email"


def has_liked_sync(user_id: str) -> bool:
    with db_module.SessionLocal() as db:
        return db.query(AppLike.id).filter_by(user_id=user_id).first() is not None


def add_like_sync(user_id: str, user_email: str | None) -> bool:
    """Insert the like once. Returns False when the user had already liked."""
    with db_module.SessionLocal() as db:
        db.add(AppLike(user_id=user_id, user_email=user_email, liked=True))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True


def add_feedback_sync(user_id: str, user_email: str | None, message: str) -> int:
    with db_module.SessionLocal() as db:
        row = AppFeedback(user_id=user_id, user_email=user_email, message=message)
        db.add(row)
        db.commit()
        return row.id


def admin_stats_sync(now: datetime | None = None) -> dict[str, int]:
    now = now or datetime.now(timezone.utc)
    day_start = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
    with db_module.SessionLocal() as db:
        stats = {
            "total_users": db.query(func.count(Profile.id)).scalar() or 0,
            "total_likes": db.query(func.count(AppLike.id)).scalar() or 0,
            "total_feedback": db.query(func.count(AppFeedback.id)).scalar() or 0,
            "today_users": db.query(func.count(Profile.id))
            .filter(Profile.created_at >= day_start)
            .scalar()
            or 0,
        }
    stats["active_today"] = count_profiles_sync(day_start)
    return stats


async def notify_feedback(
    kind: str,
    user_id: str,
    user_email: str | None,
    message: str | None = None,
) -> bool:
    """Ask the backend's email function to forward a like or a feedback note."""
    if not settings.backend_url:
        logger.warning("BACKEND_URL missing, skip feedback email")
        return False
    url = f"{settings.backend_url.rstrip('/')}{FEEDBACK_FUNCTION_PATH}"
    payload = {"type": kind, "userEmail": user_email, "userId": user_id}
    if message is not None:
        payload["message"] = message
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(url, json=payload, timeout=10)
        if resp.status_code >= 400:
            logger.warning("Feedback email failed: %s", resp.text)
            return False
        return True
    except httpx.HTTPError as exc:
        logger.warning("Feedback email failed: %s", exc)
        return False


__all__ = [
    "FEEDBACK_FUNCTION_PATH",
    "has_liked_sync",
    "add_like_sync",
    "add_feedback_sync",
    "admin_stats_sync",
    "notify_feedback",
]
