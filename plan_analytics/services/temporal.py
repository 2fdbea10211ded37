"""
Temporal Derivation — durations, progress and delay from activity dates.

Calendar dates are treated as instants at 00:00 UTC. Every function that
depends on "now" takes an explicit reference instant; nothing in the
engine reads the wall clock.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from plan_analytics.models import Activity, ActivityStatus, matches
from plan_analytics.parsing import clamp, parse_date, parse_iso_datetime

SECONDS_PER_HOUR = 3600

Reference = Union[datetime, date, str]


def as_instant(value: Reference) -> datetime:
    """
    Normalize a reference date/time to a naive UTC datetime.

    Strings may be ISO 8601 (a trailing Z included) or any of the date
    layouts parse_date understands. A reference that parses as nothing
    is a caller error, so it raises ValueError.
    """
    if isinstance(value, str):
        text = value.strip()
        parsed = parse_iso_datetime(text) or parse_date(text)
        if parsed is None:
            raise ValueError(f"Unrecognised reference date: {value!r}")
        value = parsed
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime.combine(value, time())


def at_midnight(value: Optional[date]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.combine(value, time())


def diff_hours(start: Optional[datetime], end: Optional[datetime]) -> float:
    if start is None or end is None:
        return 0.0
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def shift(moment: datetime, hours: float) -> datetime:
    """Move an instant by some hours, saturating at the calendar's ends."""
    try:
        return moment + timedelta(hours=hours)
    except (OverflowError, ValueError):
        return datetime.max if hours > 0 else datetime.min


def to_iso_date(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else ""


def planned_duration_hours(activity: Activity) -> float:
    """
    Planned duration, by precedence:
    manual override > explicit planned hours > planned date span > base effort.
    """
    if activity.manual_override_duration > 0:
        return activity.manual_override_duration
    if activity.planned_duration_hours > 0:
        return activity.planned_duration_hours

    span = diff_hours(
        at_midnight(activity.planned_start_date),
        at_midnight(activity.planned_end_date),
    )
    if span > 0:
        return span
    return max(0.0, activity.base_effort_hours)


def actual_duration_hours(activity: Activity, reference: Reference) -> float:
    if activity.actual_duration_hours > 0:
        return activity.actual_duration_hours

    start = at_midnight(activity.actual_start_date)
    end = at_midnight(activity.actual_end_date)
    if start and end:
        return max(0.0, diff_hours(start, end))
    if start and not matches(activity.activity_status, ActivityStatus.COMPLETED):
        return max(0.0, diff_hours(start, as_instant(reference)))
    return 0.0


def expected_completion(activity: Activity, reference: Reference) -> float:
    """Where progress should be today if work followed the plan linearly."""
    start = at_midnight(activity.planned_start_date)
    end = at_midnight(activity.planned_end_date)
    if start is None or end is None:
        return 0.0

    now = as_instant(reference)
    if now <= start:
        return 0.0
    if now >= end:
        return 100.0
    total = diff_hours(start, end)
    if total <= 0:
        return 0.0
    return clamp(diff_hours(start, now) / total * 100, 0, 100)


def effective_completion(activity: Activity) -> float:
    if matches(activity.activity_status, ActivityStatus.COMPLETED):
        return 100.0
    if activity.actual_end_date is not None:
        return 100.0
    return clamp(activity.completion_percentage, 0, 100)


def delay_hours(activity: Activity, reference: Reference) -> float:
    planned_end = at_midnight(activity.planned_end_date)
    if planned_end is None:
        return 0.0

    actual_end = at_midnight(activity.actual_end_date)
    if actual_end is not None:
        return max(0.0, diff_hours(planned_end, actual_end))

    if effective_completion(activity) >= 100:
        return 0.0
    if matches(activity.activity_status, ActivityStatus.COMPLETED):
        return 0.0
    return max(0.0, diff_hours(planned_end, as_instant(reference)))


def is_delayed(activity: Activity, reference: Reference) -> bool:
    if matches(activity.activity_status, ActivityStatus.DELAYED):
        return True
    return delay_hours(activity, reference) > 0


def infer_status(activity: Activity, reference: Reference) -> str:
    """Status implied by the execution data, falling back to the stored one."""
    completion = effective_completion(activity)
    if completion >= 100 or activity.actual_end_date is not None:
        return ActivityStatus.COMPLETED.value
    if is_delayed(activity, reference):
        return ActivityStatus.DELAYED.value
    if activity.actual_start_date is not None or completion > 0:
        return ActivityStatus.IN_PROGRESS.value
    return activity.activity_status or ActivityStatus.NOT_STARTED.value
