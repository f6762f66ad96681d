from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, Header, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from app.config import Settings
from app.dependencies import (
    CurrentUser,
    ErrorResponse,
    current_session,
    get_sessions,
    rate_limit,
    require_user,
    workflow_error_response,
)
from app.services.errors import FileRejected, NoResult, Notice, ProbeFailed
from app.services.sessions import SessionManager
from app.services.upload_session import UploadSession
from app.services.validator import (
    SelectedVideo,
    VideoCandidate,
    validate_file,
    validate_size,
    validate_type,
)

settings = Settings()
logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

router = APIRouter()


class SignInRequest(BaseModel):
    full_name: str = ""


class VideoInfo(BaseModel):
    name: str
    size: int
    content_type: str


class MetadataInfo(BaseModel):
    duration: int
    resolution: str


class SessionResponse(BaseModel):
    state: str
    progress: int
    processing: bool
    generation: int
    video: VideoInfo | None = None
    metadata: MetadataInfo | None = None
    has_result: bool
    notice: Notice | None = None


class HandoffResponse(BaseModel):
    filename: str
    result_url: str
    notice: Notice | None = None
    session: SessionResponse


async def _spool_upload(upload: UploadFile, limit: int) -> tuple[Path, int]:
    """Copy the request body to disk, stopping one chunk past ``limit``."""
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix
    fd, name = tempfile.mkstemp(dir=settings.upload_dir, suffix=suffix)
    size = 0
    with os.fdopen(fd, "wb") as out:
        while chunk := await upload.read(CHUNK_SIZE):
            size += len(chunk)
            if size > limit:
                break
            out.write(chunk)
    return Path(name), size


@router.post("/auth/session", response_model=SessionResponse)
async def sign_in(
    body: SignInRequest | None = None,
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    body = body or SignInRequest()
    # identity comes from the proxy headers only; the body is display data
    session = await sessions.sign_in(user.id, user.email, body.full_name)
    return session.snapshot()


@router.delete("/auth/session")
async def sign_out(
    user: CurrentUser = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
):
    return {"signed_out": await sessions.sign_out(user.id)}


@router.post(
    "/upload",
    status_code=202,
    response_model=SessionResponse,
    responses={
        401: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)
async def upload_video(
    video: UploadFile = File(...),
    _user: CurrentUser = Depends(rate_limit),
    session: UploadSession = Depends(current_session),
):
    limit = settings.max_upload_bytes
    allowed = settings.allowed_video_types
    try:
        validate_type(video.content_type, allowed)
        if video.size is not None:
            validate_size(video.size, limit)
    except FileRejected as exc:
        return workflow_error_response(exc)

    path, size = await _spool_upload(video, limit)
    name = video.filename or path.name
    try:
        validate_file(
            VideoCandidate(name, video.content_type, size),
            allowed=allowed,
            max_bytes=limit,
        )
    except FileRejected as exc:
        path.unlink(missing_ok=True)
        return workflow_error_response(exc)

    handle = session.registry.create_from_path(path, video.content_type)
    selected = SelectedVideo(
        handle=handle, name=name, content_type=video.content_type, size=size
    )
    try:
        await session.select_file(selected)
    except ProbeFailed as exc:
        return workflow_error_response(exc)
    return session.snapshot()


@router.get("/upload", response_model=SessionResponse)
async def upload_status(session: UploadSession = Depends(current_session)):
    return session.snapshot()


@router.post("/upload/retry", response_model=SessionResponse)
async def retry_extraction(session: UploadSession = Depends(current_session)):
    session.retry()
    return session.snapshot()


@router.post("/upload/reset", response_model=SessionResponse)
async def reset_upload(session: UploadSession = Depends(current_session)):
    session.reset()
    return session.snapshot()


@router.get(
    "/upload/result",
    response_class=Response,
    responses={404: {"model": ErrorResponse}},
)
async def upload_result(session: UploadSession = Depends(current_session)):
    try:
        content = session.result_bytes()
    except NoResult as exc:
        return workflow_error_response(exc)
    return Response(content=content, media_type="image/png")


@router.post(
    "/upload/download",
    responses={
        200: {"content": {"image/png": {}}, "model": HandoffResponse},
        404: {"model": ErrorResponse},
    },
)
async def download_frame(
    session: UploadSession = Depends(current_session),
    user_agent: str | None = Header(None, alias="User-Agent"),
):
    try:
        handoff = session.download(user_agent)
    except NoResult as exc:
        return workflow_error_response(exc)

    if handoff.disposition == "attachment":
        return Response(
            content=handoff.content,
            media_type=handoff.content_type,
            headers={
                "Content-Disposition": f'attachment; filename="{handoff.filename}"'
            },
        )
    body = HandoffResponse(
        filename=handoff.filename,
        result_url="/v1/upload/result",
        notice=handoff.notice,
        session=SessionResponse(**session.snapshot()),
    )
    return JSONResponse(content=body.model_dump())
