from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Integer, String

from app.models.base import Base


class Profile(Base):
    """Per-user plan and daily extraction usage."""

    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String)
    full_name = Column(String, nullable=False, server_default="")
    plan = Column(
        Enum("free", "paid", name="profile_plan"),
        nullable=False,
        server_default="free",
    )
    subscription_status = Column(String)
    billing_interval = Column(Enum("month", "year", name="billing_interval"))
    usage_count = Column(Integer, nullable=False, default=0, server_default="0")
    usage_limit = Column(Integer, nullable=False, default=5, server_default="5")
    last_extraction = Column(DateTime(timezone=True))
    # bumped on every usage write; conditional updates compare against it
    version = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


__all__ = ["Profile"]
