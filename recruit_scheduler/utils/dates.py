from collections import namedtuple
from datetime import datetime, timedelta
from typing import Union

import pytz
from dateutil import parser


DISPLAY_TIMEZONE = "America/Los_Angeles"
INPUT_FORMAT = "%Y-%m-%dT%H:%M"
DEFAULT_SLOT_LENGTH = timedelta(minutes=30)

DisplayParts = namedtuple("DisplayParts", ["weekday", "month", "day", "hour12", "minute", "meridiem"])

Instant = Union[str, datetime]


def get_timezone(tz_name: str) -> pytz.BaseTzInfo:
    """Get timezone object from name."""
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone: {tz_name}")


def parse_instant(value: Instant) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Stored instants are UTC, so naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = parser.isoparse(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def to_display_time(instant: Instant, tz_name: str = DISPLAY_TIMEZONE) -> datetime:
    """Convert a stored instant to wall-clock time in the display timezone."""
    return parse_instant(instant).astimezone(get_timezone(tz_name))


def to_display_parts(instant: Instant, tz_name: str = DISPLAY_TIMEZONE) -> DisplayParts:
    """Break an instant into the fields shown next to a meeting slot.

    The result depends only on the instant and the named timezone, never on
    the timezone of the machine running the code.
    """
    local = to_display_time(instant, tz_name)
    hour12 = local.hour % 12 or 12
    return DisplayParts(
        weekday=local.strftime("%A"),
        month=local.strftime("%B"),
        day=local.day,
        hour12=hour12,
        minute=local.minute,
        meridiem="AM" if local.hour < 12 else "PM",
    )


def format_clock(instant: Instant, tz_name: str = DISPLAY_TIMEZONE) -> str:
    """Format as '9:05 AM'."""
    parts = to_display_parts(instant, tz_name)
    return f"{parts.hour12}:{parts.minute:02d} {parts.meridiem}"


def format_display(instant: Instant, tz_name: str = DISPLAY_TIMEZONE) -> str:
    """Format as 'Monday, January 5, 9:00 AM'."""
    parts = to_display_parts(instant, tz_name)
    return f"{parts.weekday}, {parts.month} {parts.day}, {parts.hour12}:{parts.minute:02d} {parts.meridiem}"


def format_time_range(start: Instant, end: Instant = None, tz_name: str = DISPLAY_TIMEZONE) -> str:
    """Format as '9:00 AM - 9:30 AM PT', assuming the default slot length without an end."""
    start_dt = parse_instant(start)
    end_dt = parse_instant(end) if end is not None else start_dt + DEFAULT_SLOT_LENGTH
    return f"{format_clock(start_dt, tz_name)} - {format_clock(end_dt, tz_name)} PT"


def to_input_value(instant: Instant, tz_name: str = DISPLAY_TIMEZONE) -> str:
    """Render an instant as an editable 'YYYY-MM-DDTHH:MM' value in display time."""
    return to_display_time(instant, tz_name).strftime(INPUT_FORMAT)


def from_input_value(value: str, tz_name: str = DISPLAY_TIMEZONE) -> datetime:
    """Read a 'YYYY-MM-DDTHH:MM' display-time value back into an aware UTC datetime."""
    if not value or not value.strip():
        raise ValueError("Date and time are required")

    normalized = value.strip().replace(" ", "T")
    try:
        naive = datetime.strptime(normalized[:16], INPUT_FORMAT)
    except ValueError:
        raise ValueError(f"Invalid date format: {value}. Expected YYYY-MM-DDTHH:MM")

    tz = get_timezone(tz_name)
    return tz.normalize(tz.localize(naive)).astimezone(pytz.utc)


def to_storage_value(instant: Instant) -> str:
    """Serialize an instant the way the backend stores it: UTC with a Z suffix."""
    dt = parse_instant(instant)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def default_end_value(start_value: str, tz_name: str = DISPLAY_TIMEZONE) -> str:
    """End-time input value that follows a freshly chosen start time."""
    start = from_input_value(start_value, tz_name)
    return to_input_value(start + DEFAULT_SLOT_LENGTH, tz_name)


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def within_year_of(instant: datetime, now: datetime) -> bool:
    """True when the instant lies no more than one year before or after now."""
    try:
        year_ago = now.replace(year=now.year - 1)
        year_ahead = now.replace(year=now.year + 1)
    except ValueError:
        # Feb 29
        year_ago = now - timedelta(days=365)
        year_ahead = now + timedelta(days=365)
    return year_ago <= instant <= year_ahead
