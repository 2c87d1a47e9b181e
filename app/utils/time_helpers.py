"""Naive-UTC datetime helpers shared by models and services."""
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the format stored in the DB)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_source_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp coming from a source platform.

    Offsets are converted to UTC and dropped; unparseable values yield None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
