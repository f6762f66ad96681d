"""Signed-in users and their upload sessions.

The manager is created in the app lifespan and handed to request handlers
through ``app.state``; it owns the handle registry and the one periodic
task that reconciles usage counters for every signed-in user.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from app.config import Settings
from app.services.handles import HandleRegistry
from app.services.profiles import ProfileStore
from app.services.quota import reconcile_profile
from app.services.upload_session import UploadSession

logger = logging.getLogger(__name__)


class NotSignedIn(LookupError):
    pass


class SessionManager:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: Any | None = None,
        registry: HandleRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
        session_factory: Callable[..., UploadSession] = UploadSession,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or ProfileStore()
        self.registry = registry or HandleRegistry()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._session_factory = session_factory
        self._sessions: dict[str, UploadSession] = {}
        self._emails: dict[str, str | None] = {}
        self._reconciler: asyncio.Task | None = None

    def is_admin(self, email: str | None) -> bool:
        admin = self.settings.admin_email
        return bool(admin and email and email.lower() == admin.lower())

    async def sign_in(
        self, user_id: str, email: str | None = None, full_name: str = ""
    ) -> UploadSession:
        """Make sure a profile exists and open (or return) the user's session."""
        await self.store.ensure(user_id, email, full_name)
        session = self._sessions.get(user_id)
        if session is None:
            session = self._session_factory(
                user_id,
                registry=self.registry,
                store=self.store,
                settings=self.settings,
                clock=self._clock,
                quota_enforced=self.settings.quota_enforced and not self.is_admin(email),
            )
            self._sessions[user_id] = session
            self._emails[user_id] = email
            logger.info("Signed in", extra={"user_id": user_id})
        return session

    async def sign_out(self, user_id: str) -> bool:
        session = self._sessions.pop(user_id, None)
        self._emails.pop(user_id, None)
        if session is None:
            return False
        await session.close()
        logger.info("Signed out", extra={"user_id": user_id})
        return True

    def get(self, user_id: str) -> UploadSession:
        try:
            return self._sessions[user_id]
        except KeyError:
            raise NotSignedIn(user_id) from None

    def email_for(self, user_id: str) -> str | None:
        return self._emails.get(user_id)

    @property
    def user_ids(self) -> list[str]:
        return list(self._sessions)

    async def reconcile_once(self) -> int:
        """Zero expired usage windows for signed-in users. Returns resets done."""
        now = self._clock()
        policy = {
            "policy": self.settings.quota_reset_policy,
            "window": timedelta(hours=self.settings.quota_window_h),
            "tz": ZoneInfo(self.settings.quota_timezone),
        }
        resets = 0
        for user_id in self.user_ids:
            try:
                profile = await self.store.get(user_id)
                if profile is None:
                    continue
                if await reconcile_profile(self.store, profile, now, **policy):
                    resets += 1
            except Exception:
                logger.exception("Usage reconciliation failed", extra={"user_id": user_id})
        return resets

    async def _reconcile_loop(self) -> None:
        interval = self.settings.reconcile_interval_s
        while True:
            await asyncio.sleep(interval)
            await self.reconcile_once()

    def start(self) -> None:
        if self._reconciler is None and self.settings.reconcile_interval_s > 0:
            self._reconciler = asyncio.create_task(self._reconcile_loop())

    async def close(self) -> None:
        if self._reconciler is not None:
            self._reconciler.cancel()
            try:
                await self._reconciler
            except asyncio.CancelledError:
                pass
            self._reconciler = None
        for user_id in self.user_ids:
            session = self._sessions.pop(user_id)
            await session.close(cancel_in_flight=True)
        self._emails.clear()
        leaked = self.registry.revoke_all()
        if leaked:
            logger.warning("Released %s handles left at shutdown", leaked)


__all__ = ["NotSignedIn", "SessionManager"]
