"""Time helpers for billing periods.

All timestamps handled by the ledger are naive datetimes expressed in UTC.
"""

import calendar
from datetime import datetime, timezone
from typing import Tuple


def utc_now() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(moment: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def from_epoch_seconds(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def calendar_month_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """First and last instant of the UTC calendar month containing ``moment``."""
    moment = to_naive_utc(moment)
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    start = datetime(moment.year, moment.month, 1)
    end = datetime(moment.year, moment.month, last_day, 23, 59, 59, 999999)
    return start, end
