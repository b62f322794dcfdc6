import math
from datetime import date, datetime, time, timedelta

from dateutil import tz

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    # Columns store naive UTC.
    return datetime.now(tz.UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | date) -> datetime:
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value
    return value.astimezone(tz.UTC).replace(tzinfo=None)


def count_nights(check_in: datetime, check_out: datetime) -> int:
    """Whole nights between two instants, rounding partial days up."""
    delta = to_naive_utc(check_out) - to_naive_utc(check_in)
    return math.ceil(delta / ONE_DAY)


def ranges_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    # Half-open ranges, touching ends do not overlap.
    return start_a < end_b and end_a > start_b


def older_than(moment: datetime, window: timedelta, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return now - to_naive_utc(moment) > window
