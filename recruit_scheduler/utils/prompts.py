from datetime import datetime
from typing import List, Optional
from rich.console import Console
from rich.table import Table
from rich.prompt import Prompt, Confirm
from rich.panel import Panel

from ..models import MeetingSlot, SlotStatus
from ..slots import slot_status
from .dates import DISPLAY_TIMEZONE, format_display, format_time_range


console = Console()

STATUS_STYLES = {
    SlotStatus.UPCOMING: "blue",
    SlotStatus.ACTIVE: "green",
    SlotStatus.COMPLETED: "dim",
}


def print_success(message: str) -> None:
    """Print success message in green."""
    console.print(f"✅ {message}", style="green")


def print_error(message: str) -> None:
    """Print error message in red."""
    console.print(f"❌ {message}", style="red")


def print_warning(message: str) -> None:
    """Print warning message in yellow."""
    console.print(f"⚠️  {message}", style="yellow")


def print_info(message: str) -> None:
    """Print info message in blue."""
    console.print(f"ℹ️  {message}", style="blue")


def prompt_text(message: str, default: Optional[str] = None, hide_input: bool = False) -> str:
    """Prompt for text input."""
    return Prompt.ask(message, default=default, password=hide_input)


def prompt_confirm(message: str, default: bool = True) -> bool:
    """Prompt for yes/no confirmation."""
    return Confirm.ask(message, default=default)


def display_public_slots(slots: List[MeetingSlot], tz_name: str = DISPLAY_TIMEZONE) -> None:
    """Display open slots the way registrants see them."""
    table = Table(title="Coffee Chat Slots")
    table.add_column("ID", style="dim")
    table.add_column("When (PT)", style="green")
    table.add_column("Time", style="yellow")
    table.add_column("Location", style="cyan")
    table.add_column("Spots", justify="right")

    for slot in slots:
        spots = "Full" if slot.is_full else f"{slot.remaining} spots left"
        table.add_row(
            str(slot.id),
            format_display(slot.start_time, tz_name),
            format_time_range(slot.start_time, slot.end_time, tz_name),
            slot.location,
            spots,
        )

    console.print(table)


def display_member_slots(slots: List[MeetingSlot], now: datetime, tz_name: str = DISPLAY_TIMEZONE) -> None:
    """Display a member's own slots with their signups."""
    for slot in slots:
        status = slot_status(slot, now)
        summary = f"{slot.signup_count}/{slot.capacity} signed up"
        if slot.attended_count:
            summary += f" • {slot.attended_count} attended"

        table = Table(
            title=f"[{STATUS_STYLES[status]}]{status.value.upper()}[/] #{slot.id} "
                  f"{format_display(slot.start_time, tz_name)} @ {slot.location} ({summary})",
            title_justify="left",
        )
        table.add_column("Signup", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Email", style="blue")
        table.add_column("Student ID")
        table.add_column("Attended", justify="center")

        for signup in slot.signups:
            table.add_row(
                str(signup.id),
                signup.full_name,
                signup.email,
                signup.display_student_id,
                "✔" if signup.attended else "",
            )

        console.print(table)


def display_panel(title: str, content: str, style: str = "blue") -> None:
    """Display content in a panel."""
    console.print(Panel(content, title=title, border_style=style))


def print_divider() -> None:
    """Print a visual divider."""
    console.print("─" * 60, style="dim")
