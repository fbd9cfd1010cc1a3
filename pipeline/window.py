"""
Ingestion window: previous calendar month through the end of the current one
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from schemas.sync import IngestionWindow


def _first_of_month(year: int, month: int) -> datetime:
    """1st of the given month at 00:00:00.000 UTC; month may over/underflow by one"""
    if month < 1:
        year, month = year - 1, month + 12
    elif month > 12:
        year, month = year + 1, month - 12
    return datetime(year, month, 1, tzinfo=timezone.utc)


def resolve_window(now: Optional[datetime] = None) -> IngestionWindow:
    """
    Compute the fixed two-month window for one fetch cycle.

    Args:
        now: Reference instant; defaults to the current time. Naive values
            are taken to be UTC.

    Returns:
        IngestionWindow where range_start is the 1st of the previous month
        and range_end is one millisecond before the 1st of the next month.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)

    range_start = _first_of_month(now.year, now.month - 1)
    range_end = _first_of_month(now.year, now.month + 1) - timedelta(milliseconds=1)

    return IngestionWindow(range_start=range_start, range_end=range_end)
