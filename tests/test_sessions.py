from datetime import datetime, timedelta, timezone
from functools import partial

import pytest

from app.services.profiles import FreeProfile
from app.services.sessions import NotSignedIn, SessionManager
from app.services.upload_session import UploadSession
from tests.utils.fakes import FakeExtractor, FakeProber, FakeStore, fast_settings, make_video

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _manager(store, **settings):
    return SessionManager(
        fast_settings(**settings),
        store=store,
        clock=lambda: NOW,
    )


@pytest.mark.asyncio
async def test_sign_in_creates_profile_and_session():
    store = FakeStore()
    manager = _manager(store)

    session = await manager.sign_in("u1", "u1@example.com", "User One")

    assert store.profiles["u1"].email == "u1@example.com"
    assert manager.get("u1") is session
    assert await manager.sign_in("u1", "u1@example.com") is session
    assert manager.user_ids == ["u1"]
    assert session.quota_enforced is True


@pytest.mark.asyncio
async def test_admin_email_is_exempt():
    manager = _manager(FakeStore(), admin_email="Boss@Example.com")

    session = await manager.sign_in("boss", "boss@example.com")

    assert manager.is_admin("BOSS@example.com")
    assert not manager.is_admin(None)
    assert session.quota_enforced is False


@pytest.mark.asyncio
async def test_sign_out_releases_session(tmp_path):
    manager = SessionManager(
        fast_settings(),
        store=FakeStore(),
        clock=lambda: NOW,
        session_factory=partial(UploadSession, prober=FakeProber(), extractor=FakeExtractor()),
    )
    session = await manager.sign_in("u1")
    await session.select_file(make_video(manager.registry, tmp_path))
    await session.settle()
    assert manager.registry.live == 2

    assert await manager.sign_out("u1") is True
    assert manager.registry.live == 0
    with pytest.raises(NotSignedIn):
        manager.get("u1")
    assert await manager.sign_out("u1") is False


@pytest.mark.asyncio
async def test_reconcile_once_resets_expired_windows():
    store = FakeStore(
        FreeProfile(id="old", usage_count=5, last_extraction=NOW - timedelta(hours=26)),
        FreeProfile(id="new", usage_count=2, last_extraction=NOW - timedelta(hours=1)),
    )
    manager = _manager(store)
    await manager.sign_in("old")
    await manager.sign_in("new")

    assert await manager.reconcile_once() == 1
    assert store.profiles["old"].usage_count == 0
    assert store.profiles["new"].usage_count == 2
    assert await manager.reconcile_once() == 0


@pytest.mark.asyncio
async def test_reconcile_survives_store_errors(caplog):
    store = FakeStore(FreeProfile(id="u1", usage_count=1, last_extraction=NOW - timedelta(days=2)))
    manager = _manager(store)
    await manager.sign_in("u1")
    store.fail_reads = True

    with caplog.at_level("ERROR"):
        assert await manager.reconcile_once() == 0
    assert "Usage reconciliation failed" in caplog.text


@pytest.mark.asyncio
async def test_start_and_close():
    manager = _manager(FakeStore(), reconcile_interval_s=3600)
    manager.start()
    assert manager._reconciler is not None
    await manager.sign_in("u1")

    await manager.close()

    assert manager._reconciler is None
    assert manager.user_ids == []


@pytest.mark.asyncio
async def test_interval_zero_disables_reconciler():
    manager = _manager(FakeStore(), reconcile_interval_s=0)
    manager.start()
    assert manager._reconciler is None
    await manager.close()
