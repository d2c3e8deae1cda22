"""
Input validation for the course and meeting pattern editor.

The expansion engine does not re-validate its input: these checks run
before a schedule is saved and raise ValidationError with a message that
can be shown to the user as-is.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Optional

from studyplanner.errors import ValidationError
from studyplanner.model import PRIORITIES, TERM_TYPES, Course, CourseMeeting, Term, Weekday


_HEX_COLOR = re.compile(r"^#?(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


def _check_clock(hour: int, minute: int, what: str) -> None:
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"Invalid {what} time: {hour:02d}:{minute:02d}")


def validate_meeting(meeting: CourseMeeting) -> None:
    """
    Reject meetings the engine would expand into nonsense.

    Rules:
    - day_of_week is one of the seven canonical Weekday values
    - start and end are valid clock times
    - end is strictly after start (minutes since midnight)
    """
    try:
        Weekday(int(meeting.day_of_week))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid day of week: {meeting.day_of_week!r}") from None

    _check_clock(meeting.start_hour, meeting.start_minute, "start")
    _check_clock(meeting.end_hour, meeting.end_minute, "end")

    if meeting.end_minutes <= meeting.start_minutes:
        raise ValidationError(f"Meeting must end after it starts: {meeting.describe()}")

    if not meeting.meeting_type.strip():
        raise ValidationError("Meeting type must not be empty")


def validate_meetings(meetings: Iterable[CourseMeeting]) -> None:
    for meeting in meetings:
        validate_meeting(meeting)


def validate_range(start: date, end: date) -> None:
    if start > end:
        raise ValidationError(f"Start date {start.isoformat()} is after end date {end.isoformat()}")


def validate_term(term: Term) -> None:
    if not term.name.strip():
        raise ValidationError("Term name must not be empty")
    validate_range(term.start_date, term.end_date)


def validate_course(course: Course) -> None:
    if not course.name.strip():
        raise ValidationError("Course name must not be empty")
    if not _HEX_COLOR.match(course.color or ""):
        raise ValidationError(f"Invalid color: {course.color!r} (expected hex like #4ECDC4)")
    if course.term_type is not None and course.term_type not in TERM_TYPES:
        raise ValidationError(f"Term type must be one of {', '.join(TERM_TYPES)}")
    if course.units is not None and not (1 <= course.units <= 6):
        raise ValidationError("Units must be between 1 and 6")
    if course.term_start_date is not None and course.term_end_date is not None:
        validate_range(course.term_start_date, course.term_end_date)


def validate_priority(priority: Optional[str]) -> str:
    value = (priority or "Medium").strip().title()
    if value not in PRIORITIES:
        raise ValidationError(f"Priority must be one of {', '.join(PRIORITIES)}")
    return value
