from datetime import datetime, timezone

from services.text_utils import generate_post_slug, sanitize_user_input, slugify


def test_sanitize_strips_markup_and_control_characters():
    cleaned = sanitize_user_input("<script>alert(1)</script>Hello\x00 <b>nurses</b>\nline two")
    assert "<" not in cleaned
    assert "\x00" not in cleaned
    assert "Hello" in cleaned
    assert "nurses" in cleaned
    assert "\n" in cleaned


def test_sanitize_truncates_and_handles_empty():
    assert sanitize_user_input("") == ""
    assert sanitize_user_input(None) == ""
    assert len(sanitize_user_input("a" * 50, max_length=10)) == 10


def test_slugify():
    assert slugify("  How I passed NCLEX in 75 Qs!  ") == "how-i-passed-nclex-in-75-qs"
    assert slugify("!!!") == ""


def test_post_slug_appends_base36_timestamp():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    slug = generate_post_slug("Test day tips", now=now)
    millis = int(now.timestamp() * 1000)
    assert slug.startswith("test-day-tips-")
    assert int(slug.rsplit("-", 1)[1], 36) == millis
    assert generate_post_slug("???", now=now).startswith("post-")
