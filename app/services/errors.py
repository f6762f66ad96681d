"""User-facing failures of the upload workflow.

Every error carries a short title + description pair that is safe to show
as-is; the raw cause stays in the logs.
"""
from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel

from app.models import ErrorCode


class Notice(BaseModel):
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


class WorkflowError(Exception):
    code: ErrorCode = ErrorCode.BAD_REQUEST
    status_code: int = 400
    title: str = "Something went wrong"

    def __init__(self, description: str):
        super().__init__(description)
        self.notice = Notice(
            title=self.title, description=description, variant="destructive"
        )


class RejectReason(str, Enum):
    INVALID_TYPE = "invalid_type"
    TOO_LARGE = "too_large"


class FileRejected(WorkflowError):
    def __init__(self, reason: RejectReason, description: str):
        self.reason = reason
        if reason is RejectReason.INVALID_TYPE:
            self.code = ErrorCode.INVALID_FILE_TYPE
            self.status_code = 415
            self.title = "Invalid file type"
        else:
            self.code = ErrorCode.FILE_TOO_LARGE
            self.status_code = 413
            self.title = "File too large"
        super().__init__(description)


class ProbeFailed(WorkflowError):
    code = ErrorCode.PROBE_FAILED
    status_code = 422
    title = "Could not read video"


class QuotaExceeded(WorkflowError):
    code = ErrorCode.LIMIT_REACHED
    status_code = 402
    title = "Limit Reached"


class ExtractionFailed(WorkflowError):
    code = ErrorCode.EXTRACTION_FAILED
    status_code = 502
    title = "Extraction Failed"


class NoResult(WorkflowError):
    code = ErrorCode.NO_RESULT
    status_code = 404
    title = "Nothing to download"


class HandleError(RuntimeError):
    """A revocable handle was used after release or released twice."""


__all__ = [
    "Notice",
    "WorkflowError",
    "RejectReason",
    "FileRejected",
    "ProbeFailed",
    "QuotaExceeded",
    "ExtractionFailed",
    "NoResult",
    "HandleError",
]
