"""Time and datetime utilities."""

import re
from datetime import date, datetime, time, timezone

from clinicops.core.exceptions import ValidationError

_TWELVE_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")


def utc_now() -> datetime:
    """Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(dt: datetime, fmt: str = "%Y-%m-%dT%H:%M:%SZ") -> str:
    """Format datetime to ISO string.

    Args:
        dt: Datetime to format
        fmt: Format string (default ISO 8601)

    Returns:
        Formatted datetime string
    """
    return ensure_utc(dt).strftime(fmt)


def format_time_12h(value: time) -> str:
    """Render a time the way patients read it, e.g. ``2:30 PM``."""
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {meridiem}"


def parse_date(value: date | str) -> date:
    """Parse a ``YYYY-MM-DD`` appointment date.

    Raises:
        ValidationError: If the value is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}") from None


def parse_time(value: time | str) -> time:
    """Parse an appointment time.

    Accepts ``HH:MM``, ``HH:MM:SS`` and 12-hour ``h:MM AM/PM`` input and
    returns a 24-hour ``time``.

    Raises:
        ValidationError: If the value is not a valid time
    """
    if isinstance(value, time):
        return value

    text = str(value).strip()
    match = _TWELVE_HOUR.match(text)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            raise ValidationError(f"Invalid time: {value!r}")
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0
        return time(hour, minute)

    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue

    raise ValidationError(f"Invalid time: {value!r}")
