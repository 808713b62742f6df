"""
Utility functions for handling datetime operations consistently across the codebase.
All functions ensure proper timezone handling using UTC.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

# Time-range options offered next to the message-count buttons
TIME_WINDOW_OPTIONS = ('today', 'yesterday', 'last_3_days', 'last_week')


def get_utc_now() -> datetime:
    """
    Get the current datetime in UTC.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def utc_today(now: Optional[datetime] = None) -> date:
    """
    Get the current calendar day in UTC.

    Usage counters are bucketed by this date everywhere they are read or
    written, so it must never be derived from the host's local timezone.
    """
    if now is None:
        now = get_utc_now()
    return make_aware(now).astimezone(timezone.utc).date()


def make_aware(dt: datetime) -> datetime:
    """
    Ensure a datetime object has timezone information.
    If it doesn't, assume it's UTC.

    Args:
        dt (datetime): The datetime object to make timezone-aware

    Returns:
        datetime: Timezone-aware datetime object
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def get_day_boundaries(day: datetime) -> Tuple[datetime, datetime]:
    """
    Get the start and end boundaries of a day in UTC.

    Args:
        day (datetime): Any instant within the day

    Returns:
        Tuple[datetime, datetime]: Start and end of the day in UTC
    """
    day_utc = make_aware(day).astimezone(timezone.utc)

    start_date = datetime(day_utc.year, day_utc.month, day_utc.day,
                          0, 0, 0, tzinfo=timezone.utc)
    end_date = datetime(day_utc.year, day_utc.month, day_utc.day,
                        23, 59, 59, 999999, tzinfo=timezone.utc)

    return start_date, end_date


def get_time_window(option: str, now: Optional[datetime] = None) -> Tuple[datetime, Optional[datetime]]:
    """
    Translate a time-range option into a (start, end) pair.

    ``end`` is None for open windows that run up to the present.

    Args:
        option (str): One of TIME_WINDOW_OPTIONS
        now (Optional[datetime]): Reference instant, defaults to the current UTC time

    Returns:
        Tuple[datetime, Optional[datetime]]: Window start and optional end

    Raises:
        ValueError: If the option is unknown
    """
    now = make_aware(now or get_utc_now()).astimezone(timezone.utc)

    if option == 'today':
        start, _ = get_day_boundaries(now)
        return start, None
    if option == 'yesterday':
        return get_day_boundaries(now - timedelta(days=1))
    if option == 'last_3_days':
        return now - timedelta(days=3), None
    if option == 'last_week':
        return now - timedelta(days=7), None

    raise ValueError(f"Unknown time window option: {option}")
