"""Timezone helpers: calendar days are taken in the task owner's timezone."""
import logging
from datetime import date, datetime
from typing import Optional, Union

import pytz

logger = logging.getLogger(__name__)


def get_safe_timezone(name: Optional[str], default: str = "UTC"):
    """Return a pytz timezone, falling back to ``default`` for unknown names."""
    try:
        return pytz.timezone(name or default)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}', falling back to {default}")
        return pytz.timezone(default)


def to_local_date(value: Union[date, datetime], tz_name: Optional[str] = None) -> date:
    """Calendar day of ``value`` in ``tz_name``.

    Naive datetimes are treated as UTC, which is how timestamps are stored.
    Plain dates are already calendar days and are returned unchanged.
    """
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(get_safe_timezone(tz_name)).date()


def local_today(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """Today's date in ``tz_name``; ``now`` defaults to the current UTC time."""
    if now is None:
        now = datetime.now(pytz.utc)
    return to_local_date(now, tz_name)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form timestamps are stored in."""
    return datetime.now(pytz.utc).replace(tzinfo=None)
