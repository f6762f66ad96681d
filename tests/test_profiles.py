import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from app.db import SessionLocal
from app.models import Profile
from app.services.profiles import (
    FreeProfile,
    PaidProfile,
    ProfileStore,
    count_profiles_sync,
    ensure_profile_sync,
    get_profile_sync,
    list_profiles_with_usage_sync,
    record_extraction_sync,
    reset_usage_sync,
    to_profile,
)

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _uid():
    return f"user-{uuid.uuid4().hex[:8]}"


def test_first_sign_in_creates_free_profile():
    uid = _uid()
    profile = ensure_profile_sync(uid, "a@example.com", "Ann")

    assert isinstance(profile, FreeProfile)
    assert profile.usage_count == 0
    assert profile.usage_limit == 5
    assert profile.last_extraction is None
    assert ensure_profile_sync(uid, "other@example.com").email == "a@example.com"
    assert get_profile_sync(uid) == profile


def test_missing_profile_is_none():
    assert get_profile_sync("nobody") is None


def test_conditional_usage_write():
    uid = _uid()
    profile = ensure_profile_sync(uid)

    updated = record_extraction_sync(uid, expected_version=profile.version, usage_count=1, now=NOW)
    assert updated.usage_count == 1
    assert updated.last_extraction == NOW
    assert updated.version == profile.version + 1

    # a writer holding the old version loses
    assert record_extraction_sync(uid, expected_version=profile.version, usage_count=9, now=NOW) is None
    assert get_profile_sync(uid).usage_count == 1


def test_reset_keeps_last_extraction():
    uid = _uid()
    profile = ensure_profile_sync(uid)
    profile = record_extraction_sync(uid, expected_version=profile.version, usage_count=3, now=NOW)

    assert uid in {p.id for p in list_profiles_with_usage_sync()}
    reset = reset_usage_sync(uid, expected_version=profile.version)

    assert reset.usage_count == 0
    assert reset.last_extraction == NOW
    assert uid not in {p.id for p in list_profiles_with_usage_sync()}


def test_count_profiles_since():
    uid = _uid()
    profile = ensure_profile_sync(uid)
    later = datetime(2099, 1, 1, tzinfo=timezone.utc)
    record_extraction_sync(uid, expected_version=profile.version, usage_count=1, now=later)
    assert count_profiles_sync(later - timedelta(seconds=1)) >= 1
    assert count_profiles_sync() >= 1


def test_paid_row_requires_billing_interval():
    uid = _uid()
    with SessionLocal() as db:
        db.add(Profile(id=uid, plan="paid", billing_interval="year", usage_limit=100, version=0))
        db.commit()

    profile = get_profile_sync(uid)
    assert isinstance(profile, PaidProfile)
    assert profile.billing_interval == "year"

    with pytest.raises(ValidationError):
        to_profile(Profile(id="x", plan="paid", billing_interval=None, usage_limit=5, version=0))


def test_free_row_drops_stale_interval():
    profile = to_profile(
        Profile(id="x", plan="free", billing_interval="month", usage_limit=5, usage_count=0, version=0)
    )
    assert isinstance(profile, FreeProfile)
    assert profile.billing_interval is None


@pytest.mark.asyncio
async def test_store_wraps_sync_calls():
    store = ProfileStore()
    uid = _uid()
    profile = await store.ensure(uid, "s@example.com")
    updated = await store.record_extraction(
        uid, expected_version=profile.version, usage_count=2, now=NOW
    )
    assert (await store.get(uid)).usage_count == 2
    reset = await store.reset_usage(uid, expected_version=updated.version)
    assert reset.usage_count == 0
