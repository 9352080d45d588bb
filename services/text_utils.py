import re
from datetime import datetime, timezone

import bleach

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def sanitize_user_input(text: str, max_length: int = 10000) -> str:
    """Strip markup and control characters from free text"""
    if not text:
        return ""

    if len(text) > max_length:
        text = text[:max_length]

    text = bleach.clean(
        text,
        tags=[],
        attributes={},
        strip=True
    )

    text = _CONTROL_CHARS.sub("", text)

    return text.strip()


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    result = ""
    while number:
        number, remainder = divmod(number, 36)
        result = digits[remainder] + result
    return result


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-")[:80]


def generate_post_slug(title: str, now: datetime = None) -> str:
    """Slugified title plus a base-36 millisecond timestamp."""
    now = now or datetime.now(timezone.utc)
    stamp = _to_base36(int(now.timestamp() * 1000))
    base = slugify(title) or "post"
    return f"{base}-{stamp}"
