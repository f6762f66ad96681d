from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from .base import Base


def _now():
    return datetime.now(timezone.utc)


class AppLike(Base):
    __tablename__ = "app_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True)
    user_email = Column(String)
    liked = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class AppFeedback(Base):
    __tablename__ = "app_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    user_email = Column(String)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


__all__ = ["AppLike", "AppFeedback"]
