from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import Settings
from app.db import init_db
from app.logger import setup_logging
from app.controllers import v1
from app.services.sessions import SessionManager

settings = Settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await asyncio.to_thread(init_db, settings)
    sessions = SessionManager(settings)
    sessions.start()
    app.state.sessions = sessions
    try:
        yield
    finally:
        await sessions.close()

if sys.version_info[:2] < (3, 11):
    raise RuntimeError("Python 3.11+ is required")

app = FastAPI(
    title="FloFrame API",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(v1.router)

Instrumentator().instrument(app).expose(app)
