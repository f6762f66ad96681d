from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.config import Settings
from app.models import Base

logger = logging.getLogger(__name__)


engine: Engine | None = None
_session_factory: sessionmaker | None = None


class _SessionWrapper:
    """Callable proxy returning sessions from the current factory."""

    def __call__(self, *args: Any, **kwargs: Any):
        if _session_factory is None:
            raise RuntimeError("Database not initialized")
        return _session_factory(*args, **kwargs)


SessionLocal = _SessionWrapper()


def init_db(cfg: Settings) -> None:
    """Create engine and session factory for the profile store."""
    global engine, _session_factory

    options: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if cfg.database_url.startswith("sqlite"):
        # reconciliation and request handlers hit the file from worker threads
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_size=20, max_overflow=0, pool_recycle=30)

    engine = create_engine(cfg.database_url, **options)
    _session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
    )

    if cfg.db_create_all:
        Base.metadata.create_all(engine)
    logger.info("Database initialised (%s)", engine.dialect.name)
