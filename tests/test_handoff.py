from datetime import datetime, timezone

import pytest

from app.services.handles import HandleRegistry
from app.services.handoff import IOS_NOTICE, frame_filename, is_ios, prepare_handoff


@pytest.mark.parametrize(
    "ua,expected",
    [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)", True),
        ("Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X)", True),
        ("Mozilla/5.0 (iPod touch; CPU iPhone OS 12_5)", True),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", False),
        ("Mozilla/5.0 (Linux; Android 14; Pixel 8)", False),
        (None, False),
        ("", False),
    ],
)
def test_is_ios(ua, expected):
    assert is_ios(ua) is expected


def test_frame_filename_uses_epoch_millis():
    now = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert frame_filename(now) == f"floframe-{int(now.timestamp() * 1000)}.png"


def test_desktop_gets_attachment_and_reset():
    registry = HandleRegistry()
    result = registry.create_from_bytes(b"png", "image/png")

    handoff = prepare_handoff(result, registry, "Mozilla/5.0 (Windows NT 10.0)")

    assert handoff.disposition == "attachment"
    assert handoff.reset is True
    assert handoff.notice is None
    assert handoff.content == b"png"
    assert handoff.content_type == "image/png"
    # revoking is the session's job
    assert registry.live == 1


def test_ios_gets_inline_with_instructions():
    registry = HandleRegistry()
    result = registry.create_from_bytes(b"png", "image/png")

    handoff = prepare_handoff(result, registry, "Mozilla/5.0 (iPhone)")

    assert handoff.disposition == "inline"
    assert handoff.reset is False
    assert handoff.notice == IOS_NOTICE
    assert IOS_NOTICE.title == "iOS Device Detected"
