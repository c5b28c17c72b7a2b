"""Date helpers: timezone-safe 'now', ISO parsing and Turkish display strings."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from portfoy_ai.config.constants import TR_MONTHS, TR_WEEKDAYS


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (a trailing 'Z' is accepted); None if invalid."""
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except (AttributeError, ValueError):
        return None


def format_tr_datetime(dt: datetime) -> str:
    """'17 Ekim 2026 09:30'"""
    return f"{dt.day} {TR_MONTHS[dt.month - 1]} {dt.year} {dt:%H:%M}"


def format_tr_weekday(d: date) -> str:
    """'Pazar, 19 Ekim'"""
    return f"{TR_WEEKDAYS[d.weekday()]}, {d.day} {TR_MONTHS[d.month - 1]}"
