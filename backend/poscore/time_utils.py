from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def store_timezone() -> ZoneInfo:
    name = "UTC"
    if has_app_context():
        name = current_app.config.get("STORE_TIMEZONE") or "UTC"
    return ZoneInfo(name)


def folio_day_key(now: Optional[datetime] = None) -> str:
    """
    Calendar day (YYYYMMDD) used to partition folio series.

    Naive datetimes are interpreted as UTC, then shifted to the store's
    timezone so that every request in the same local day shares a key.
    """
    if now is None:
        now = utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(store_timezone()).strftime("%Y%m%d")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
