"""Sanitation helpers for identifiers, header fields and transcript text."""

import re
from datetime import datetime, timezone

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_LINE_BREAKS = re.compile(r"[\r\n\t]+")


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def safe_id(value: object, max_length: int = 200) -> str | None:
    """Reduce an identifier to ``[A-Za-z0-9._-]`` and cap it; ``None`` when nothing is left."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return _UNSAFE_ID_CHARS.sub("", trimmed)[:max_length] or None


def safe_line(value: object, max_length: int = 200) -> str:
    """Flatten a header field to a single line and cap its length."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""
    return _LINE_BREAKS.sub(" ", trimmed)[:max_length]


def safe_context_value(value: object, max_length: int = 240) -> str:
    """Normalise an authoritative context value (e.g. a ranked benefit)."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""
    return re.sub(r"[\r\n\t]", " ", trimmed)[:max_length]


def clean_text_block(text: object) -> str:
    """Normalise line endings, strip trailing blanks per line and trim the block."""
    if not isinstance(text, str):
        return ""
    unified = text.replace("\r\n", "\n").replace("\r", "\n")
    return "\n".join(line.rstrip() for line in unified.split("\n")).strip()


def safe_iso_date(value: object) -> str | None:
    """Parse a client-supplied timestamp and re-emit it as UTC ISO-8601."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (
        parsed.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )
