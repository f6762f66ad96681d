from enum import Enum


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    UPGRADE_REQUIRED = "UPGRADE_REQUIRED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NOT_SIGNED_IN = "NOT_SIGNED_IN"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    PROBE_FAILED = "PROBE_FAILED"
    LIMIT_REACHED = "LIMIT_REACHED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    NO_RESULT = "NO_RESULT"
