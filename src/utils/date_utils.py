from datetime import date, datetime
from typing import Union

WEEKDAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def as_date(value: Union[date, datetime, str]) -> date:
    """Coerce a date, datetime or ISO string (YYYY-MM-DD) to a date.

    Args:
        value: Value read from the store or an API payload

    Returns:
        The calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise ValueError(f"Cannot interpret {value!r} as a date")


def weekday_name(day_of_week: int) -> str:
    """Weekday name for Python's weekday() numbering (0=Monday)"""
    return WEEKDAY_NAMES[day_of_week]

