from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def add_days(day: str, days: int) -> str:
    """Shift a YYYY-MM-DD string by `days` calendar days."""
    return (date.fromisoformat(day) + timedelta(days=int(days))).isoformat()


def compact_date(day: str) -> str:
    """YYYY-MM-DD -> YYYYMMDD (used in invoice numbers)."""
    return date.fromisoformat(day).strftime("%Y%m%d")
