"""Cron expression helpers backed by APScheduler triggers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from apscheduler.triggers.cron import CronTrigger

# Human-readable field names for error messages
_FIELD_NAMES = ("minute", "hour", "day-of-month", "month", "day-of-week")

_DOW_NAMES = {
    "0": "Sunday",
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
}


def _translate_day_of_week(field: str) -> str:
    """Map crontab weekday numbers (0/7=Sunday) onto APScheduler's (0=Monday).

    Named days and ``*`` pass through untouched.
    """
    if field == "*":
        return field
    days: set[int] = set()
    passthrough: list[str] = []
    for item in field.split(","):
        base, _, step = item.partition("/")
        if base == "*":
            lo, hi = 0, 6
        elif "-" in base:
            lo_s, _, hi_s = base.partition("-")
            if not (lo_s.isdigit() and hi_s.isdigit()):
                passthrough.append(item)
                continue
            lo, hi = int(lo_s), int(hi_s)
        elif base.isdigit():
            lo = int(base)
            hi = 6 if step else lo
        else:
            passthrough.append(item)
            continue
        if lo > 7 or hi > 7 or (step and not step.isdigit()):
            raise ValueError(f"Invalid day-of-week field: {field!r}")
        for day in range(lo, hi + 1, int(step) if step else 1):
            days.add((day % 7 - 1) % 7)
    return ",".join([str(d) for d in sorted(days)] + passthrough)


def build_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a CronTrigger from a 5-part crontab expression. Raises ValueError when invalid."""
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {expression!r}")
    minute, hour, day, month, day_of_week = parts
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone=timezone,
        )
    except (ValueError, KeyError) as exc:
        raise ValueError(f"Invalid cron expression {expression!r}: {exc}") from exc


def validate_cron_expression(expression: str) -> tuple[bool, str]:
    """Validate a 5-part cron expression. Returns (is_valid, error_message)."""
    parts = expression.strip().split()
    if len(parts) != 5:
        return False, f"Expected 5 fields ({', '.join(_FIELD_NAMES)}), got {len(parts)}"
    try:
        build_trigger(expression)
    except ValueError as exc:
        return False, str(exc)
    return True, ""


def next_fire_time(expression: str, timezone: str, after: datetime) -> datetime:
    """Return the first fire time strictly after ``after``, in UTC.

    The rule is evaluated in ``timezone`` so "0 8 * * *" means 08:00 local
    wall-clock time.
    """
    trigger = build_trigger(expression, timezone)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    # get_next_fire_time rounds up to the next whole second and may return `now` itself.
    candidate = trigger.get_next_fire_time(None, after + timedelta(microseconds=1))
    if candidate is None:
        raise ValueError(f"Cron expression {expression!r} never fires again")
    return candidate.astimezone(UTC)


def cron_to_human(expression: str) -> str:
    """Convert a 5-part cron expression to a short description."""
    parts = expression.strip().split()
    if len(parts) != 5:
        return expression

    minute, hour, day, month, dow = parts

    if parts == ["*", "*", "*", "*", "*"]:
        return "Every minute"
    if minute.startswith("*/") and hour == "*" and day == "*" and month == "*" and dow == "*":
        return f"Every {minute[2:]} minutes"
    if minute != "*" and hour != "*" and day == "*" and month == "*":
        try:
            time_str = f"{int(hour):d}:{int(minute):02d}"
        except ValueError:
            return expression
        if dow == "*":
            return f"Every day at {time_str}"
        if dow == "1-5":
            return f"Weekdays at {time_str}"
        return f"Every {_DOW_NAMES.get(dow, dow)} at {time_str}"
    return expression
