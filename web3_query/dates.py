import re
from datetime import UTC, date, datetime, time, timedelta
from typing import Optional, Union

from dateutil import parser as date_parser

from web3_query.exceptions import ValidationError

DateLike = Union[str, date, datetime]

_RELATIVE_PATTERN = re.compile(
    r"(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago",
    re.IGNORECASE,
)

# Months and years use fixed lengths.
UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 604800,
    "month": 2592000,
    "year": 31536000,
}


def parse_date(value: DateLike, now: Optional[datetime] = None) -> datetime:
    """
    Turn a date expression into an aware UTC datetime.

    Args:
        value (DateLike): A datetime, a date, an absolute date string or a
                          relative expression such as "2 hours ago".
        now (Optional[datetime]): Reference time for relative expressions.
                                  Defaults to the current wall-clock time.

    Returns:
        datetime: The resolved moment in UTC.

    Raises:
        ValidationError: If the string cannot be parsed.
    """
    if isinstance(value, datetime):
        target = value
    elif isinstance(value, date):
        target = datetime.combine(value, time.min)
    else:
        match = _RELATIVE_PATTERN.fullmatch(value.strip())
        if match:
            amount = int(match.group(1))
            unit = match.group(2).lower()
            reference = now or datetime.now(UTC)
            return reference - timedelta(seconds=amount * UNIT_SECONDS[unit])
        try:
            target = date_parser.parse(value)
        except (ValueError, OverflowError) as exc:
            raise ValidationError(f"Invalid date: {value}") from exc

    if target.tzinfo is None:
        return target.replace(tzinfo=UTC)
    return target.astimezone(UTC)


def to_iso(moment: datetime) -> str:
    """Format an aware datetime as an ISO-8601 UTC string with milliseconds."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
