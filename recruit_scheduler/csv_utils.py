import csv
from pathlib import Path
from typing import Iterable

from .models import MeetingSlot
from .utils.dates import DISPLAY_TIMEZONE, format_display


ROSTER_HEADERS = ["slot_id", "location", "start", "full_name", "email", "student_id", "attended"]


def write_roster(path: Path, slots: Iterable[MeetingSlot], tz_name: str = DISPLAY_TIMEZONE) -> int:
    """Export every signup of the given slots to CSV for attendance tracking.

    Output format:
    slot_id,location,start,full_name,email,student_id,attended
    12,Kerckhoff 131,"Monday, January 5, 9:00 AM",Alice Zhang,alice@ucla.edu,123456789,yes

    Returns:
        Number of signup rows written
    """
    rows = 0

    try:
        with open(path, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=ROSTER_HEADERS)
            writer.writeheader()

            for slot in slots:
                start = format_display(slot.start_time, tz_name)
                for signup in slot.signups:
                    writer.writerow({
                        'slot_id': slot.id,
                        'location': slot.location,
                        'start': start,
                        'full_name': signup.full_name,
                        'email': signup.email,
                        'student_id': signup.display_student_id,
                        'attended': 'yes' if signup.attended else 'no',
                    })
                    rows += 1

    except OSError as e:
        raise ValueError(f"Error writing roster file: {e}")

    return rows
