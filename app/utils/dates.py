"""
Date helpers shared by the odds refresh, settlement and bet placement paths.

All datetimes are stored naive in UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def parse_iso_utc(value: Optional[str]) -> Optional[datetime]:
    """Parse a provider timestamp ("2025-08-16T19:00:00+00:00") into naive UTC."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def season_for(now: Optional[datetime] = None) -> int:
    """European seasons run August to July and are named by their starting year."""
    now = now or datetime.utcnow()
    return now.year if now.month >= 8 else now.year - 1


def settlement_time(kickoffs, delay_hours: int) -> Optional[datetime]:
    valid = [k for k in kickoffs if k is not None]
    if not valid:
        return None
    return max(valid) + timedelta(hours=delay_hours)


def unix_seconds(dt: datetime) -> int:
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
