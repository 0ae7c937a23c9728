import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from .api import ApiClient
from .exceptions import RemoteError, SlotFullError, ValidationError
from .models import (
    ActiveCycle, MAX_CAPACITY, MIN_CAPACITY, MeetingSlot, Registrant, Signup,
    SignupResult, SlotStatus,
)
from .utils.dates import (
    DISPLAY_TIMEZONE, default_end_value, from_input_value, parse_instant,
    to_input_value, to_storage_value, utc_now, within_year_of,
)


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 2
DEFAULT_STATUS_DURATION = timedelta(hours=1)
CYCLE_LOOKBACK_MONTHS = 1

STUDENT_ID_PATTERN = re.compile(r"^\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

TimeInput = Union[str, datetime]
Confirm = Callable[[str], bool]


class SlotScope(str, Enum):
    PUBLIC = "public"
    MEMBER = "member"


SLOT_ENDPOINTS = {
    SlotScope.PUBLIC: "/meeting-slots",
    SlotScope.MEMBER: "/member/meeting-slots",
}


@dataclass
class SlotForm:
    """Editable slot fields, with times as display-time input values."""
    location: str = ""
    start_time: str = ""
    end_time: str = ""
    capacity: int = DEFAULT_CAPACITY
    slot_id: Any = None

    def with_start(self, value: str, tz_name: str = DISPLAY_TIMEZONE) -> "SlotForm":
        """Set the start time and move the end time to 30 minutes later."""
        try:
            end_time = default_end_value(value, tz_name)
        except ValueError as e:
            raise ValidationError(str(e), field="startTime")
        return replace(self, start_time=value, end_time=end_time)


def _coerce_time(value: TimeInput, field: str, tz_name: str) -> datetime:
    try:
        if isinstance(value, str):
            return from_input_value(value, tz_name)
        return parse_instant(value)
    except ValueError as e:
        raise ValidationError(str(e), field=field)


def validate_slot_fields(location: str, start_time: TimeInput, end_time: Optional[TimeInput],
                         capacity: Any, now: datetime,
                         tz_name: str = DISPLAY_TIMEZONE) -> Tuple[str, datetime, Optional[datetime], int]:
    """Check a slot before it is sent and return the normalized values.

    Raises:
        ValidationError: On the first field that fails
    """
    location = (location or "").strip()
    if not location:
        raise ValidationError("Location is required", field="location")

    try:
        capacity = int(capacity)
    except (TypeError, ValueError):
        raise ValidationError("Capacity must be a whole number", field="capacity")
    if not MIN_CAPACITY <= capacity <= MAX_CAPACITY:
        raise ValidationError(f"Capacity must be between {MIN_CAPACITY} and {MAX_CAPACITY}", field="capacity")

    start = _coerce_time(start_time, "startTime", tz_name)
    end = None
    if end_time not in (None, ""):
        end = _coerce_time(end_time, "endTime", tz_name)

    for field, value in (("startTime", start), ("endTime", end)):
        if value is not None and not within_year_of(value, now):
            raise ValidationError("Date must be within one year of today", field=field)

    if end is not None and end <= start:
        raise ValidationError("End time must be after start time", field="endTime")

    return location, start, end, capacity


def validate_registrant(registrant: Registrant) -> Registrant:
    """Check the public signup form and return it with whitespace trimmed."""
    full_name = (registrant.full_name or "").strip()
    email = (registrant.email or "").strip()
    student_id = (registrant.student_id or "").strip() or None

    if not full_name:
        raise ValidationError("Full name is required", field="fullName")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email address is required", field="email")
    if student_id is not None and not STUDENT_ID_PATTERN.match(student_id):
        raise ValidationError("Student ID must be 9 digits", field="studentId")

    return Registrant(full_name=full_name, email=email, student_id=student_id)


def delete_confirmation_message(slot: MeetingSlot) -> str:
    count = len(slot.signups)
    if count:
        return (
            f"Are you sure you want to delete this meeting slot? This will cancel the meeting for "
            f"{count} signup(s) and send them cancellation emails. This action cannot be undone."
        )
    return "Are you sure you want to delete this meeting slot? This action cannot be undone."


def remove_signup_confirmation_message(signup: Signup) -> str:
    return (
        f"Are you sure you want to remove {signup.full_name} from this timeslot? "
        f"This will send them a cancellation email."
    )


def slot_status(slot: MeetingSlot, now: datetime) -> SlotStatus:
    """Display label for a slot; nothing happens on a transition."""
    end = slot.end_time or slot.start_time + DEFAULT_STATUS_DURATION
    if now < slot.start_time:
        return SlotStatus.UPCOMING
    if now <= end:
        return SlotStatus.ACTIVE
    return SlotStatus.COMPLETED


def current_and_future_slots(slots: Iterable[MeetingSlot], now: datetime) -> List[MeetingSlot]:
    """Slots that have not started yet, or start right now.

    Call it on every render; ``now`` moves.
    """
    return [slot for slot in slots if slot.start_time >= now]


def available_slots(slots: Iterable[MeetingSlot], now: datetime) -> List[MeetingSlot]:
    """Slots a registrant can still pick on the public page."""
    return [slot for slot in current_and_future_slots(slots, now) if not slot.is_full]


def capacity_totals(slots: Iterable[MeetingSlot]) -> Tuple[int, int]:
    """Return (spots still open, spots offered)."""
    slots = list(slots)
    return sum(slot.remaining for slot in slots), sum(slot.capacity for slot in slots)


def filter_slots_by_cycle(slots: Iterable[MeetingSlot], cycle: Optional[ActiveCycle]) -> List[MeetingSlot]:
    """Public view: keep slots inside the active cycle's date range."""
    slots = list(slots)
    if cycle is None:
        return slots
    if cycle.start_date is None and cycle.end_date is None:
        # Slots left over from an old cycle have no range to match against
        return []

    kept = []
    for slot in slots:
        slot_date = slot.start_time.date()
        if cycle.start_date and slot_date < cycle.start_date:
            continue
        if cycle.end_date and slot_date > cycle.end_date:
            continue
        kept.append(slot)
    return kept


def filter_own_slots_by_cycle(slots: Iterable[MeetingSlot], cycle: Optional[ActiveCycle]) -> List[MeetingSlot]:
    """Member view: keep slots created up to a month before the cycle started."""
    slots = list(slots)
    if cycle is None:
        return []
    if cycle.start_date is None:
        return slots

    cutoff = cycle.start_date - relativedelta(months=CYCLE_LOOKBACK_MONTHS)
    return [slot for slot in slots if slot.created_at is None or slot.created_at.date() >= cutoff]


class SlotManager:
    """CRUD over meeting slots plus signups and attendance.

    Client-side checks mirror the backend's so obvious mistakes never leave
    the machine, but the backend stays authoritative: capacity in particular
    is only advisory here. Every mutation is followed by a full reload; a
    reload that fails after a successful write is logged and the write
    still counts as done.
    """

    def __init__(self, api: ApiClient, *, clock: Callable[[], datetime] = utc_now,
                 tz_name: str = DISPLAY_TIMEZONE):
        self.api = api
        self.clock = clock
        self.tz_name = tz_name
        self.slots: List[MeetingSlot] = []
        self.scope = SlotScope.PUBLIC
        self.editing: Optional[SlotForm] = None

    def list_slots(self, scope: SlotScope = SlotScope.PUBLIC) -> List[MeetingSlot]:
        """Fetch every slot visible in the given scope."""
        data = self.api.get(SLOT_ENDPOINTS[scope]) or []
        self.slots = [MeetingSlot.from_api(item) for item in data]
        self.scope = scope
        return self.slots

    def _reload(self, scope: SlotScope) -> List[MeetingSlot]:
        """Refresh after a write that already succeeded; a failed refresh keeps the old list."""
        try:
            return self.list_slots(scope)
        except RemoteError as e:
            logger.warning("Saved, but failed to reload meeting slots: %s", e)
            return self.slots

    def get_slot(self, slot_id: Any) -> Optional[MeetingSlot]:
        """Look a slot up in the last loaded list."""
        for slot in self.slots:
            if str(slot.id) == str(slot_id):
                return slot
        return None

    def _slot_payload(self, location, start_time, end_time, capacity) -> dict:
        location, start, end, capacity = validate_slot_fields(
            location, start_time, end_time, capacity, self.clock(), self.tz_name
        )
        return {
            "location": location,
            "startTime": to_storage_value(start),
            "endTime": to_storage_value(end) if end else None,
            "capacity": capacity,
        }

    def create_slot(self, location: str, start_time: TimeInput, end_time: Optional[TimeInput] = None,
                    capacity: int = DEFAULT_CAPACITY) -> List[MeetingSlot]:
        """Validate and create a slot, then reload the member's slots.

        Raises:
            ValidationError: Before any request, when a field is invalid
            RemoteError: When the backend rejects the slot
        """
        payload = self._slot_payload(location, start_time, end_time, capacity)
        self.api.post(SLOT_ENDPOINTS[SlotScope.MEMBER], payload)
        return self._reload(SlotScope.MEMBER)

    def update_slot(self, slot_id: Any, location: str, start_time: TimeInput,
                    end_time: Optional[TimeInput] = None, capacity: int = DEFAULT_CAPACITY) -> List[MeetingSlot]:
        """Validate and save changes to a slot, then reload the member's slots."""
        self._put_slot(slot_id, location, start_time, end_time, capacity)
        return self._reload(SlotScope.MEMBER)

    def _put_slot(self, slot_id, location, start_time, end_time, capacity) -> None:
        payload = self._slot_payload(location, start_time, end_time, capacity)
        self.api.put(f"{SLOT_ENDPOINTS[SlotScope.MEMBER]}/{slot_id}", payload)

    def begin_edit(self, slot: MeetingSlot) -> SlotForm:
        """Open the edit session for a slot, replacing any other one."""
        self.editing = SlotForm(
            location=slot.location,
            start_time=to_input_value(slot.start_time, self.tz_name),
            end_time=to_input_value(slot.end_time, self.tz_name) if slot.end_time else "",
            capacity=slot.capacity,
            slot_id=slot.id,
        )
        return self.editing

    def cancel_edit(self) -> None:
        self.editing = None

    def submit_edit(self, form: Optional[SlotForm] = None) -> List[MeetingSlot]:
        """Save the open edit session; it stays open if saving fails."""
        form = form or self.editing
        if form is None or self.editing is None or str(form.slot_id) != str(self.editing.slot_id):
            raise ValidationError("No slot is being edited")

        self._put_slot(form.slot_id, form.location, form.start_time, form.end_time or None, form.capacity)
        self.editing = None
        return self._reload(SlotScope.MEMBER)

    def delete_slot(self, slot: MeetingSlot, confirm: Confirm) -> bool:
        """Delete a slot once the user confirms.

        The backend emails every signup a cancellation; the confirmation text
        says so when there are signups.

        Returns:
            False if the user declined, True once deleted
        """
        if not confirm(delete_confirmation_message(slot)):
            return False

        self.api.delete(f"{SLOT_ENDPOINTS[SlotScope.MEMBER]}/{slot.id}")
        if self.editing is not None and str(self.editing.slot_id) == str(slot.id):
            self.editing = None
        self._reload(SlotScope.MEMBER)
        return True

    def signup(self, slot_id: Any, registrant: Registrant) -> SignupResult:
        """Reserve a spot in a slot for a registrant.

        Raises:
            ValidationError: If the form is invalid
            SlotFullError: If the slot was already full when last loaded
            RemoteError: If the backend refuses (full, or already signed up elsewhere)
        """
        registrant = validate_registrant(registrant)

        slot = self.get_slot(slot_id)
        if slot is not None and slot.is_full:
            raise SlotFullError("This meeting slot is full", field="slotId")

        data = self.api.post(f"{SLOT_ENDPOINTS[SlotScope.PUBLIC]}/{slot_id}/signup", registrant.to_api())
        result = SignupResult.from_api(data or {})
        self._reload(SlotScope.PUBLIC)
        return result

    def set_attendance(self, signup_id: Any, attended: bool) -> None:
        """Mark whether a registrant showed up. Safe to repeat."""
        self.api.patch(f"/member/meeting-signups/{signup_id}/attendance", {"attended": bool(attended)})
        self._reload(SlotScope.MEMBER)

    def remove_signup(self, signup: Signup, confirm: Confirm) -> bool:
        """Remove a registrant from a slot once the user confirms."""
        if not confirm(remove_signup_confirmation_message(signup)):
            return False

        self.api.delete(f"/member/meeting-signups/{signup.id}")
        self._reload(SlotScope.MEMBER)
        return True

    def get_active_cycle(self) -> Optional[ActiveCycle]:
        """Fetch the active recruiting cycle; None when missing or unreachable."""
        try:
            data = self.api.get("/active-cycle")
        except RemoteError as e:
            logger.warning("Failed to load active cycle: %s", e)
            return None
        return ActiveCycle.from_api(data) if data else None
