from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime, seconds: bool = False) -> str:
    """
    Render a datetime as ISO-8601 UTC.
    - If seconds is True, use seconds precision (stable strings).
    - Else, use milliseconds precision.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="seconds" if seconds else "milliseconds")


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp (accepting a trailing 'Z') into an aware UTC datetime.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def run_dir_stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
