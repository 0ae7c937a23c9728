#!/usr/bin/env python3

import functools
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install

from . import __version__
from .calendar import CalendarLinkBuilder
from .config import ConfigManager, get_api_client
from .csv_utils import write_roster
from .evaluations import EvaluationRecorder
from .exceptions import (
    CalendarError, RecruitSchedulerError, RemoteError, SessionError,
    ValidationError,
)
from .models import Registrant
from .slots import (
    SlotManager, SlotScope, available_slots, capacity_totals, current_and_future_slots,
    filter_own_slots_by_cycle, filter_slots_by_cycle,
)
from .utils.dates import default_end_value, utc_now
from .utils.prompts import (
    console, print_success, print_error, print_warning, print_info,
    prompt_text, prompt_confirm, display_public_slots, display_member_slots,
    display_panel, print_divider,
)

install(show_locals=False)

app = typer.Typer(
    name="recruit-scheduler",
    help="CLI for coffee chat slots and interview evaluations",
    add_completion=False,
)
slots_app = typer.Typer(help="List, manage and sign up for coffee chat slots", add_completion=False)
evaluations_app = typer.Typer(help="Record and save interview evaluations", add_completion=False)
app.add_typer(slots_app, name="slots")
app.add_typer(evaluations_app, name="evaluations")

SESSION_FILE = Path.home() / ".recruit-scheduler-session.json"


class SessionManager:
    """Keeps unsaved evaluation edits between commands."""

    def __init__(self, session_file: Path = None):
        self.session_file = session_file or SESSION_FILE
        self.data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load session from file."""
        if self.session_file.exists():
            try:
                with open(self.session_file, 'r') as f:
                    self.data = json.load(f)
            except (OSError, ValueError):
                self.data = {}

    def save(self) -> None:
        """Save session to file."""
        try:
            self.session_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.session_file, 'w') as f:
                json.dump(self.data, f, indent=2, default=str)
        except OSError as e:
            print_error(f"Failed to save session: {e}")

    def clear(self) -> None:
        """Clear session data."""
        self.data = {}
        if self.session_file.exists():
            self.session_file.unlink()

    def get(self, key: str, default=None):
        """Get session value."""
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set session value and save."""
        self.data[key] = value
        self.save()


session = SessionManager(SESSION_FILE)


def handle_errors(func):
    """Decorator to handle common exceptions."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except KeyboardInterrupt:
            print_warning("\nOperation cancelled by user")
            raise typer.Exit(1)
        except ValidationError as e:
            field = f" ({e.field})" if e.field else ""
            print_error(f"{e}{field}")
            raise typer.Exit(1)
        except RemoteError as e:
            print_error(str(e))
            raise typer.Exit(1)
        except RecruitSchedulerError as e:
            print_error(str(e))
            raise typer.Exit(1)
        except Exception as e:
            print_error(f"Unexpected error: {e}")
            raise typer.Exit(1)
    return wrapper


def _load_config() -> ConfigManager:
    return ConfigManager()


def _slot_manager(config: ConfigManager) -> SlotManager:
    return SlotManager(get_api_client(config), tz_name=config.get_timezone())


def _require_slot(manager: SlotManager, slot_id: str, scope: SlotScope):
    manager.list_slots(scope)
    slot = manager.get_slot(slot_id)
    if slot is None:
        raise ValidationError(f"Meeting slot {slot_id} not found", field="slotId")
    return slot


def _ask(message: str) -> bool:
    return prompt_confirm(message, default=False)


def _always(message: str) -> bool:
    return True


@app.command()
@handle_errors
def init():
    """Configure the backend URL, API token and display timezone."""
    print_info("Welcome to Recruit Scheduler!")
    print_divider()

    config = _load_config()

    if config.is_configured():
        if not prompt_confirm("Configuration already exists. Reconfigure?", default=False):
            print_success("Using existing configuration.")
            return

    config.set_api_url(prompt_text("Backend API URL", default=config.get_api_url()))

    token = prompt_text("API token (leave blank for public access only)", default="", hide_input=True)
    config.set_token(token or None)

    config.set_timezone(prompt_text("Display timezone", default=config.get_timezone()))
    config.set_signup_url(prompt_text("Account signup page", default=config.get_signup_url()))

    print_divider()
    print_success("Configuration completed successfully!")
    print_info("Run 'recruit-scheduler slots list' to see open coffee chat slots.")


@slots_app.command("list")
@handle_errors
def list_slots(
    mine: bool = typer.Option(False, "--mine", help="Show your own slots with their signups"),
    show_all: bool = typer.Option(False, "--all", help="Include slots from other recruiting cycles"),
):
    """List coffee chat slots."""
    config = _load_config()
    manager = _slot_manager(config)
    now = utc_now()

    if mine:
        slots = manager.list_slots(SlotScope.MEMBER)
        if not show_all:
            slots = filter_own_slots_by_cycle(slots, manager.get_active_cycle())
        if not slots:
            print_info("You have not created any meeting slots for this cycle.")
            return
        display_member_slots(slots, now, config.get_timezone())
        return

    slots = manager.list_slots(SlotScope.PUBLIC)
    if not show_all:
        slots = filter_slots_by_cycle(slots, manager.get_active_cycle())
    slots = current_and_future_slots(slots, now)
    if not slots:
        print_info("No upcoming meeting slots. Check back later for new meeting opportunities.")
        return
    display_public_slots(slots, config.get_timezone())


@slots_app.command("available")
@handle_errors
def available():
    """List slots that still have open spots."""
    config = _load_config()
    manager = _slot_manager(config)

    cycle_slots = filter_slots_by_cycle(manager.list_slots(SlotScope.PUBLIC), manager.get_active_cycle())
    open_slots = available_slots(cycle_slots, utc_now())
    open_spots, _ = capacity_totals(open_slots)
    _, total_spots = capacity_totals(cycle_slots)

    if not open_slots:
        print_info("All meeting slots are either full or have passed. Check back later for new meeting opportunities.")
        return

    display_public_slots(open_slots, config.get_timezone())
    print_info(f"{open_spots} of {total_spots} spots available across {len(open_slots)} slots")
    print_warning("You can only sign up for one meeting slot.")


@slots_app.command("create")
@handle_errors
def create(
    location: str = typer.Option(..., "--location", prompt=True, help="Where the meeting happens"),
    start: str = typer.Option(..., "--start", prompt="Start (YYYY-MM-DDTHH:MM, Pacific)", help="Start time in Pacific time"),
    end: Optional[str] = typer.Option(None, "--end", help="End time (defaults to 30 minutes after start)"),
    capacity: int = typer.Option(2, "--capacity", help="Number of registrants (1-10)"),
):
    """Create a meeting slot."""
    config = _load_config()
    manager = _slot_manager(config)

    if not end:
        try:
            end = default_end_value(start, config.get_timezone())
        except ValueError as e:
            raise ValidationError(str(e), field="startTime")

    manager.create_slot(location, start, end, capacity)
    print_success("Meeting slot created.")


@slots_app.command("edit")
@handle_errors
def edit(
    slot_id: str = typer.Argument(..., help="Slot to edit"),
    location: Optional[str] = typer.Option(None, "--location"),
    start: Optional[str] = typer.Option(None, "--start", help="Start time in Pacific time"),
    end: Optional[str] = typer.Option(None, "--end", help="End time in Pacific time"),
    capacity: Optional[int] = typer.Option(None, "--capacity"),
):
    """Edit one of your meeting slots."""
    config = _load_config()
    tz_name = config.get_timezone()
    manager = _slot_manager(config)

    slot = _require_slot(manager, slot_id, SlotScope.MEMBER)
    form = manager.begin_edit(slot)

    if location is None and start is None and end is None and capacity is None:
        form.location = prompt_text("Location", default=form.location)
        new_start = prompt_text("Start (YYYY-MM-DDTHH:MM, Pacific)", default=form.start_time)
        if new_start != form.start_time:
            form = form.with_start(new_start, tz_name)
        form.end_time = prompt_text("End (YYYY-MM-DDTHH:MM, Pacific)", default=form.end_time or None) or ""
        form.capacity = prompt_text("Capacity", default=str(form.capacity))
    else:
        if location is not None:
            form.location = location
        if start is not None and end is None:
            form = form.with_start(start, tz_name)
        elif start is not None:
            form.start_time = start
        if end is not None:
            form.end_time = end
        if capacity is not None:
            form.capacity = capacity

    manager.submit_edit(form)
    print_success("Meeting slot updated.")


@slots_app.command("delete")
@handle_errors
def delete(
    slot_id: str = typer.Argument(..., help="Slot to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Delete one of your meeting slots; registrants get cancellation emails."""
    config = _load_config()
    manager = _slot_manager(config)

    slot = _require_slot(manager, slot_id, SlotScope.MEMBER)
    if manager.delete_slot(slot, _always if yes else _ask):
        print_success("Meeting slot deleted.")
    else:
        print_info("Delete cancelled.")


@slots_app.command("signup")
@handle_errors
def signup(
    slot_id: str = typer.Argument(..., help="Slot to sign up for"),
    full_name: str = typer.Option(..., "--name", prompt="Full name"),
    email: str = typer.Option(..., "--email", prompt="Email"),
    student_id: str = typer.Option("", "--student-id", help="9-digit student ID (optional)"),
):
    """Sign up for a coffee chat slot."""
    config = _load_config()
    manager = _slot_manager(config)

    manager.list_slots(SlotScope.PUBLIC)
    result = manager.signup(slot_id, Registrant(full_name=full_name, email=email, student_id=student_id or None))
    print_success(result.message)

    if result.needs_account:
        if prompt_confirm(
            "You successfully signed up for the meeting! Would you like to create an account "
            "to track your application status?",
            default=False,
        ):
            typer.launch(config.get_signup_url())


@slots_app.command("attend")
@handle_errors
def attend(
    signup_id: str = typer.Argument(..., help="Signup to mark"),
    absent: bool = typer.Option(False, "--no", help="Mark as not attended"),
):
    """Mark whether a registrant attended."""
    manager = _slot_manager(_load_config())
    manager.set_attendance(signup_id, not absent)
    print_success("Attendance updated.")


@slots_app.command("remove-signup")
@handle_errors
def remove_signup(
    signup_id: str = typer.Argument(..., help="Signup to remove"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Remove a registrant from one of your slots; they get a cancellation email."""
    manager = _slot_manager(_load_config())

    matches = [s for slot in manager.list_slots(SlotScope.MEMBER) for s in slot.signups if str(s.id) == signup_id]
    if not matches:
        raise ValidationError(f"Signup {signup_id} not found", field="signupId")

    if manager.remove_signup(matches[0], _always if yes else _ask):
        print_success("Registrant removed from timeslot.")
    else:
        print_info("Removal cancelled.")


@slots_app.command("calendar")
@handle_errors
def calendar_link(
    slot_id: str = typer.Argument(..., help="Slot to add to your calendar"),
    mine: bool = typer.Option(False, "--mine", help="Look the slot up among your own slots"),
    open_browser: bool = typer.Option(False, "--open", help="Open the link in a browser"),
):
    """Print a Google Calendar link for a slot."""
    config = _load_config()
    manager = _slot_manager(config)
    slot = _require_slot(manager, slot_id, SlotScope.MEMBER if mine else SlotScope.PUBLIC)

    try:
        link = CalendarLinkBuilder(tz_name=config.get_timezone()).for_slot(slot)
    except CalendarError as e:
        print_warning(str(e))
        return

    console.print(link, soft_wrap=True)
    if open_browser:
        typer.launch(link)


@slots_app.command("export")
@handle_errors
def export(
    output: Path = typer.Argument(Path("roster.csv"), help="CSV file to write"),
    show_all: bool = typer.Option(False, "--all", help="Include slots from other recruiting cycles"),
):
    """Export the signups of your slots to CSV."""
    config = _load_config()
    manager = _slot_manager(config)

    slots = manager.list_slots(SlotScope.MEMBER)
    if not show_all:
        slots = filter_own_slots_by_cycle(slots, manager.get_active_cycle())

    try:
        rows = write_roster(output, slots, config.get_timezone())
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)
    print_success(f"Exported {rows} signups to {output}")


def _session_key(interview_id: str) -> str:
    return f"evaluations:{interview_id}"


def _restore_recorder(config: ConfigManager, interview_id: str) -> EvaluationRecorder:
    data = session.get(_session_key(interview_id))
    if not data:
        raise SessionError(
            f"No evaluations loaded for interview {interview_id}. "
            f"Run 'recruit-scheduler evaluations show {interview_id} --groups ...' first."
        )
    recorder = EvaluationRecorder(get_api_client(config), interview_id)
    recorder.restore(data)
    return recorder


def _parse_scores(scores: List[str]) -> Dict[str, str]:
    parsed = {}
    for item in scores:
        name, sep, value = item.partition("=")
        if not sep:
            raise ValidationError(f"Scores look like category=value, got: {item}", field="rubricScores")
        parsed[name.strip()] = value.strip()
    return parsed


def _display_evaluations(recorder: EvaluationRecorder) -> None:
    table = Table(title=f"Interview {recorder.interview.get('title') or recorder.interview_id}")
    table.add_column("Application", style="dim")
    table.add_column("Candidate", style="cyan")
    table.add_column("Decision", style="yellow")
    table.add_column("Behavioral", justify="right")
    table.add_column("Market Sizing", justify="right")
    table.add_column("Notes")

    for application in recorder.applications:
        evaluation = recorder.get_evaluation(application.get("id"))
        notes = evaluation.notes if len(evaluation.notes) <= 40 else evaluation.notes[:37] + "..."
        table.add_row(
            str(application.get("id")),
            application.get("name") or application.get("fullName") or "N/A",
            evaluation.decision.label if evaluation.decision else "-",
            str(evaluation.behavioral_total or "-"),
            str(evaluation.market_sizing_total or "-"),
            notes,
        )

    console.print(table)


@evaluations_app.command("show")
@handle_errors
def show_evaluations(
    interview_id: str = typer.Argument(..., help="Interview to evaluate"),
    groups: str = typer.Option(..., "--groups", help="Comma-separated group IDs"),
    refresh: bool = typer.Option(False, "--refresh", help="Discard unsaved edits and reload"),
):
    """Load an interview's applications and your evaluations."""
    config = _load_config()
    group_ids = [g.strip() for g in groups.split(",") if g.strip()]

    if session.get(_session_key(interview_id)) and not refresh:
        recorder = _restore_recorder(config, interview_id)
        if sorted(recorder.group_ids) != sorted(group_ids):
            raise SessionError(
                f"Loaded evaluations are for groups {','.join(recorder.group_ids) or '(unknown)'}. "
                f"Rerun with --refresh to load {','.join(group_ids)}; unsaved edits will be discarded."
            )
    else:
        recorder = EvaluationRecorder(get_api_client(config), interview_id)
        recorder.load(group_ids)
        session.set(_session_key(interview_id), recorder.snapshot())

    if not recorder.applications:
        print_warning("No applications found for these groups.")
        return

    _display_evaluations(recorder)
    if recorder.has_evaluations([a.get("id") for a in recorder.applications]):
        print_info("You have started evaluations for these groups.")


@evaluations_app.command("record")
@handle_errors
def record_evaluation(
    interview_id: str = typer.Argument(...),
    application_id: str = typer.Argument(...),
    notes: Optional[str] = typer.Option(None, "--notes"),
    decision: Optional[str] = typer.Option(None, "--decision", help="YES, MAYBE_YES, UNSURE, MAYBE_NO or NO"),
    scores: List[str] = typer.Option([], "--score", help="Rubric score as category=value (1-5); repeatable"),
):
    """Change an evaluation locally; use 'save' to send it."""
    config = _load_config()
    recorder = _restore_recorder(config, interview_id)
    if application_id not in [str(a.get("id")) for a in recorder.applications]:
        raise ValidationError(
            f"Application {application_id} is not in the loaded groups", field="applicationId"
        )

    evaluation = recorder.update_evaluation(
        application_id,
        notes=notes,
        decision=decision,
        rubric_scores=_parse_scores(scores) if scores else None,
    )
    session.set(_session_key(interview_id), recorder.snapshot())

    display_panel(
        f"Application {application_id}",
        f"Decision: {evaluation.decision.label if evaluation.decision else '-'}\n"
        f"Behavioral total: {evaluation.behavioral_total}\n"
        f"Market sizing total: {evaluation.market_sizing_total}\n"
        f"Notes: {evaluation.notes or '-'}",
    )
    print_info("Not saved yet.")


@evaluations_app.command("save")
@handle_errors
def save_evaluation(
    interview_id: str = typer.Argument(...),
    application_id: str = typer.Argument(...),
):
    """Save one evaluation."""
    recorder = _restore_recorder(_load_config(), interview_id)
    try:
        recorder.save_evaluation(application_id)
    except RemoteError:
        print_error("Failed to save evaluation")
        raise typer.Exit(1)
    print_success("Evaluation saved successfully")


@evaluations_app.command("save-all")
@handle_errors
def save_all_evaluations(interview_id: str = typer.Argument(...)):
    """Save every evaluation for the loaded applications."""
    recorder = _restore_recorder(_load_config(), interview_id)
    result = recorder.save_all()

    if not result.ok:
        print_error(f"Failed to save evaluations ({len(result.failed)} of "
                    f"{len(result.failed) + len(result.succeeded)} failed)")
        raise typer.Exit(1)
    print_success("All evaluations saved successfully")


@app.command()
@handle_errors
def reset():
    """Discard unsaved evaluation edits."""
    if session.data:
        if prompt_confirm("This will discard all unsaved evaluations. Continue?", default=False):
            session.clear()
            print_success("Session cleared successfully!")
        else:
            print_info("Reset cancelled.")
    else:
        print_info("No session data to clear.")


def version_callback(value: bool):
    if value:
        console.print(f"Recruit Scheduler CLI v{__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True, help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging"),
):
    """Recruit Scheduler CLI - coffee chat slots and interview evaluations."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


if __name__ == "__main__":
    app()
