"""Next-run-time calculation for scheduled reports.

Schedules are wall-clock times in a single civil timezone. Stored instants are
naive UTC datetimes, matching the rest of the models.
"""

from datetime import datetime, date, timedelta
from typing import Optional, Tuple
import pytz

from ..models.report import ReportFrequency

REPORT_TIMEZONE = "America/New_York"

# Fields whose change invalidates a stored next_run_at
SCHEDULE_FIELDS = frozenset({
    "schedule_type",
    "schedule_frequency",
    "schedule_time",
    "schedule_day",
})


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_storage(value: datetime) -> datetime:
    """Convert an aware datetime to the naive UTC form used by the models."""
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.UTC).replace(tzinfo=None)


def parse_schedule_time(value: str) -> Tuple[int, int]:
    """Parse ``HH:MM`` into (hour, minute)."""
    try:
        hour_part, minute_part = value.split(":")
        hour, minute = int(hour_part), int(minute_part)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid schedule time: {value!r}")

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid schedule time: {value!r}")
    return hour, minute


def _localize(tz, day: date, hour: int, minute: int) -> datetime:
    """Attach the UTC offset in effect on ``day`` at the given wall time."""
    naive = datetime(day.year, day.month, day.day, hour, minute)
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError:
        # Skipped by spring-forward; read it with the standard offset
        return tz.localize(naive, is_dst=False)
    except pytz.AmbiguousTimeError:
        # Repeated by fall-back; take the first occurrence
        return tz.localize(naive, is_dst=True)


def calculate_next_run(
    frequency: str,
    schedule_time: str,
    now: Optional[datetime] = None,
    timezone: str = REPORT_TIMEZONE
) -> datetime:
    """Compute the next run instant for a schedule.

    The candidate is today's civil date at ``schedule_time``; once that has
    passed it moves to the next civil day. The frequency is validated but does
    not change the step: weekly and monthly reports also advance by one day.

    Args:
        frequency: daily, weekly or monthly
        schedule_time: wall-clock time as ``HH:MM``
        now: reference time; naive values are read as UTC (default: current time)
        timezone: civil timezone the schedule is expressed in

    Returns:
        Aware UTC datetime of the next run
    """
    ReportFrequency(frequency)
    hour, minute = parse_schedule_time(schedule_time)
    tz = pytz.timezone(timezone)

    if now is None:
        now_utc = datetime.now(pytz.UTC)
    elif now.tzinfo is None:
        now_utc = pytz.UTC.localize(now)
    else:
        now_utc = now.astimezone(pytz.UTC)

    now_local = now_utc.astimezone(tz)
    candidate_day = now_local.date()
    candidate = _localize(tz, candidate_day, hour, minute)

    if candidate <= now_local:
        candidate = _localize(tz, candidate_day + timedelta(days=1), hour, minute)

    return candidate.astimezone(pytz.UTC)


def is_due(next_run_at: Optional[datetime], now: datetime) -> bool:
    """Whether a stored next_run_at has been reached."""
    if next_run_at is None:
        return False
    return to_storage(next_run_at) <= to_storage(now)
