"""Calendar helpers that anchor ledger dates to the configured timezone."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple
from zoneinfo import ZoneInfo


DUE_TIME = time(12, 0)


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar date of `moment` as seen in `tz`."""
    return moment.astimezone(tz).date()


def local_noon_utc(day: date, tz: ZoneInfo) -> datetime:
    """12:00 on `day` in `tz`, expressed in UTC."""
    return datetime.combine(day, DUE_TIME, tzinfo=tz).astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC instants for the start of `day` and the start of the next day in `tz`."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
