from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

DEFAULT_EXTRACTION_URL = "https://floframe.app"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    api_key: str = Field("test-api-key", alias="API_KEY")
    admin_email: str | None = Field(None, alias="ADMIN_EMAIL")

    extraction_api_url: str = Field(
        DEFAULT_EXTRACTION_URL,
        alias="EXTRACTION_API_URL",
        description="Base URL of the last-frame extraction service",
    )
    extraction_timeout_s: float = Field(120.0, alias="EXTRACTION_TIMEOUT_S")

    max_upload_mb: int = Field(200, alias="MAX_UPLOAD_MB")
    allowed_video_types: list[str] = Field(
        default_factory=lambda: ["video/mp4", "video/quicktime"],
        alias="ALLOWED_VIDEO_TYPES",
    )
    upload_dir: str = Field("/tmp/floframe-uploads", alias="UPLOAD_DIR")

    ffprobe_bin: str = Field("ffprobe", alias="FFPROBE_BIN")
    probe_timeout_s: float = Field(10.0, alias="PROBE_TIMEOUT_S")

    progress_step: int = Field(5, alias="PROGRESS_STEP")
    progress_interval_ms: int = Field(80, alias="PROGRESS_INTERVAL_MS")

    default_usage_limit: int = Field(5, alias="DEFAULT_USAGE_LIMIT")
    quota_enforced: bool = Field(True, alias="QUOTA_ENFORCED")
    quota_window_h: int = Field(24, alias="QUOTA_WINDOW_H")
    quota_reset_policy: Literal["rolling", "midnight"] = Field(
        "rolling",
        alias="QUOTA_RESET_POLICY",
        description="rolling: 24h from last extraction; midnight: local calendar day",
    )
    quota_timezone: str = Field("UTC", alias="QUOTA_TIMEZONE")
    reconcile_interval_s: int = Field(60, alias="RECONCILE_INTERVAL_S")

    backend_url: str | None = Field(
        None,
        alias="BACKEND_URL",
        description="Hosted backend base URL used for the feedback email function",
    )

    database_url: str = Field("sqlite:////tmp/floframe_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024
