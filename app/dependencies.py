from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import Settings
from app.models import ErrorCode
from app.services.errors import WorkflowError
from app.services.sessions import NotSignedIn, SessionManager
from app.services.upload_session import UploadSession

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    code: str
    title: str
    description: str


class CurrentUser(BaseModel):
    id: str
    email: str | None = None


def error_response(status_code: int, code: ErrorCode, title: str, description: str) -> JSONResponse:
    err = ErrorResponse(code=code.value, title=title, description=description)
    return JSONResponse(status_code=status_code, content=err.model_dump())


def workflow_error_response(exc: WorkflowError) -> JSONResponse:
    return error_response(
        exc.status_code, exc.code, exc.notice.title, exc.notice.description
    )


def http_error(status_code: int, code: ErrorCode, title: str, description: str) -> HTTPException:
    err = ErrorResponse(code=code.value, title=title, description=description)
    return HTTPException(status_code=status_code, detail=err.model_dump())


async def require_user(
    x_api_key: str = Header(..., alias="X-API-Key"),
    x_api_ver: str | None = Header(None, alias="X-API-Ver"),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_user_email: str | None = Header(None, alias="X-User-Email"),
) -> CurrentUser:
    """Resolve the caller from the headers the auth proxy sets."""
    if x_api_ver is None:
        raise http_error(426, ErrorCode.UPGRADE_REQUIRED, "Upgrade required", "Missing API version")

    if x_api_ver != "v1":
        raise http_error(426, ErrorCode.UPGRADE_REQUIRED, "Upgrade required", "Invalid API version")

    if x_api_key != settings.api_key:
        raise http_error(401, ErrorCode.UNAUTHORIZED, "Unauthorized", "Invalid API key")

    if not x_user_id:
        raise http_error(401, ErrorCode.UNAUTHORIZED, "Unauthorized", "Missing user ID")

    return CurrentUser(id=x_user_id, email=x_user_email)


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


async def current_session(
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
) -> UploadSession:
    try:
        return sessions.get(user.id)
    except NotSignedIn:
        raise http_error(
            401, ErrorCode.NOT_SIGNED_IN, "Not signed in", "Please sign in to upload videos"
        ) from None


async def rate_limit(
    request: Request, user: CurrentUser = Depends(require_user)
) -> CurrentUser:
    """Throttle uploads by IP and user via Redis."""
    ip = request.client.host if request.client else ""
    ip_key = f"rate:ip:{ip}"
    user_key = f"rate:user:{user.id}"

    try:
        pipe = redis_client.pipeline()
        pipe.incr(ip_key)
        pipe.expire(ip_key, 60)
        pipe.incr(user_key)
        pipe.expire(user_key, 60)
        ip_count, _, user_count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        raise http_error(
            503, ErrorCode.SERVICE_UNAVAILABLE, "Service unavailable", "Rate limiter unavailable"
        ) from exc
    if ip_count > 30 or user_count > 20:
        raise http_error(
            429, ErrorCode.TOO_MANY_REQUESTS, "Slow down", "Too many uploads, try again in a minute"
        )

    return user
