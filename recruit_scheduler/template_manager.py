from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateNotFound
from pathlib import Path

from .models import MeetingSlot
from .exceptions import CalendarError
from .utils.dates import DISPLAY_TIMEZONE, to_display_time, format_clock


class TemplateEngine:
    """Renders calendar event descriptions using Jinja2."""

    def __init__(self, template_dir: Path):
        """Initialize template engine with template directory."""
        self.template_dir = Path(template_dir)

        if not self.template_dir.exists():
            raise CalendarError(f"Template directory not found: {template_dir}")

        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, *, slot: MeetingSlot, title: str,
               tz_name: str = DISPLAY_TIMEZONE) -> str:
        """Render template with meeting slot information.

        Args:
            template_name: Name of template file
            slot: Meeting slot being added to a calendar
            title: Event title
            tz_name: Timezone the date and time are shown in

        Returns:
            Rendered template content

        Raises:
            CalendarError: If template not found or rendering fails
        """
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            raise CalendarError(f"Template not found: {template_name}")

        local_start = to_display_time(slot.start_time, tz_name)
        context = {
            "title": title,
            "date": f"{local_start.strftime('%A, %B')} {local_start.day}, {local_start.year}",
            "time": format_clock(slot.start_time, tz_name),
            "location": slot.location,
            "capacity": slot.capacity,
            "signup_count": slot.signup_count,
        }

        try:
            return template.render(**context)
        except Exception as e:
            raise CalendarError(f"Failed to render template {template_name}: {e}")
