from datetime import datetime
from typing import Optional
import pytz

UTC = pytz.utc

def now_utc() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(UTC)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return UTC.localize(value)
    return value.astimezone(UTC)

def utc_day_diff(later: datetime, earlier: datetime) -> int:
    """Whole calendar days between two instants, comparing UTC dates only."""
    return (as_utc(later).date() - as_utc(earlier).date()).days
