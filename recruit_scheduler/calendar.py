from datetime import timedelta
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from .models import MeetingSlot
from .exceptions import CalendarError
from .template_manager import TemplateEngine
from .utils.dates import DISPLAY_TIMEZONE, Instant, parse_instant, format_display


GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"
DEFAULT_CALENDAR_DURATION = timedelta(minutes=30)


def format_calendar_date(instant: Instant) -> str:
    """Format an instant in the UTC basic form Google Calendar expects."""
    return parse_instant(instant).strftime("%Y%m%dT%H%M%SZ")


def build_calendar_link(title: str, start: Instant, end: Optional[Instant] = None,
                        description: str = "", location: str = "") -> str:
    """Build a Google Calendar 'add event' link.

    Pure function; no request is made. Without an end the event lasts the
    default 30 minutes.

    Raises:
        ValueError: If start or end is not a valid timestamp
    """
    start_dt = parse_instant(start)
    end_dt = parse_instant(end) if end is not None else start_dt + DEFAULT_CALENDAR_DURATION

    params = {
        "action": "TEMPLATE",
        "text": title,
        "dates": f"{format_calendar_date(start_dt)}/{format_calendar_date(end_dt)}",
        "details": description,
        "location": location,
        "sf": "true",
    }
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"


class CalendarLinkBuilder:
    """Builds calendar links for meeting slots."""

    EVENT_TITLE = "Coffee Chat - Meeting Slot"

    def __init__(self, tz_name: str = DISPLAY_TIMEZONE, template_dir: Optional[Path] = None):
        """Initialize the link builder.

        Args:
            tz_name: Timezone used for the human-readable description
            template_dir: Directory holding calendar_event.txt
        """
        self.tz_name = tz_name
        self.template_engine = TemplateEngine(template_dir or Path(__file__).parent / "templates")

    def for_slot(self, slot: MeetingSlot, title: Optional[str] = None) -> str:
        """Build an 'add to calendar' link for a slot.

        Raises:
            CalendarError: If the slot's times cannot be turned into a link
        """
        title = title or self.EVENT_TITLE

        try:
            description = self._build_description(slot, title)
            return build_calendar_link(
                title,
                slot.start_time,
                slot.end_time,
                description=description,
                location=slot.location,
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise CalendarError(f"Failed to open calendar: {e}")

    def _build_description(self, slot: MeetingSlot, title: str) -> str:
        try:
            return self.template_engine.render(
                "calendar_event.txt", slot=slot, title=title, tz_name=self.tz_name
            )
        except CalendarError:
            # Fallback to simple description if template rendering fails
            return f"{title}\n\nWhen: {format_display(slot.start_time, self.tz_name)} PT\nLocation: {slot.location}"

