# Overview: UTC clock, business-day and ISO-8601 helpers shared by services, routes and models.

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_date(now: Optional[datetime] = None) -> date:
    """The ledger day used for per-day sequence numbers (UTC calendar day)."""
    return (now or utcnow()).date()


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def days_ago_midnight(days: int, now: Optional[datetime] = None) -> datetime:
    """Midnight (UTC-naive) of the calendar day `days` before `now`."""
    return start_of_day(business_date(now) - timedelta(days=days))


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from a request into the stored form.

    Blank input gives None. Offsets (including a trailing "Z") are converted
    to UTC; naive input is taken as UTC already.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    text = (value or "").strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as second-precision ISO-8601 with a 'Z' suffix."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
