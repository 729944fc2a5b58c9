"""
Local-calendar date helpers.

All planner dates are `YYYY-MM-DD` strings and timestamps are ISO-8601 strings.
Parsing is lenient: anything missing or malformed yields None and never raises.
"""
import math
import re
from datetime import date, datetime, time
from typing import Optional

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_local_date(value: Optional[str]) -> Optional[date]:
    """Parse a strict `YYYY-MM-DD` string into a calendar date."""
    if not value or not isinstance(value, str):
        return None
    match = _DATE_RE.match(value.strip())
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO timestamp into a naive local datetime.

    Aware timestamps (including a trailing `Z`) are converted to local time.
    """
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59, 999999))


def parse_deadline(value: Optional[str]) -> Optional[datetime]:
    """
    Resolve a deadline to the instant it expires.

    A bare date expires at the end of that local day; a full timestamp
    expires at that instant.
    """
    day = parse_local_date(value)
    if day is not None:
        return end_of_day(day)
    return parse_timestamp(value)


def is_date_in_future(value: Optional[str], now: Optional[datetime] = None) -> bool:
    """True only if `value` is a valid date strictly after today's local date."""
    day = parse_local_date(value)
    if day is None:
        return False
    current = now or datetime.now()
    return day > current.date()


def days_remaining(deadline: datetime, now: datetime) -> int:
    """Whole days left until `deadline`, rounded up (<= 0 means expired)."""
    seconds = (deadline - now).total_seconds()
    return math.ceil(seconds / 86400)


def minutes_between(earlier: datetime, later: datetime) -> int:
    return round((later - earlier).total_seconds() / 60)
