"""Calendar helpers for local-day boundaries."""

from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo


def day_bounds(now: datetime, timezone: str) -> tuple[datetime, datetime]:
    """Return [start, end) of the local calendar day containing ``now``, in UTC."""
    tz = ZoneInfo(timezone)
    local = now.astimezone(tz)
    start = datetime.combine(local.date(), time.min, tzinfo=tz)
    end = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def today_start(now: datetime, timezone: str) -> datetime:
    return day_bounds(now, timezone)[0]
