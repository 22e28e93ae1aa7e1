"""Timestamp helpers."""
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo


def now_iso(tz_name: Optional[str] = None) -> str:
    """Current time as an ISO-8601 string with millisecond precision."""
    tz = ZoneInfo(tz_name) if tz_name and tz_name.upper() != "UTC" else timezone.utc
    return datetime.now(tz).isoformat(timespec="milliseconds")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are taken as UTC, garbage gives None."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
