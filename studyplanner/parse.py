"""
Parsing (editor text -> structured values).

The CLI describes a course's weekly pattern with short meeting specs:

    "Tue 09:00-09:50 Class"
    "Mon,Wed 10:15-11:30 Lab"
    "Thu 14:00-15:00"              (meeting type defaults to "Class")
    "Fri 13:00-14:30 Office Hours" (multi-word types are fine)

One spec with several days gives one CourseMeeting per day, all sharing
the same time window and type.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Tuple

from studyplanner.errors import ValidationError
from studyplanner.model import DEFAULT_MEETING_TYPE, CourseMeeting, Weekday


def parse_clock(text: str) -> Tuple[int, int]:
    """
    Convert 'HH:MM' (or 'HHMM') to (hour, minute).
    Raises ValidationError for invalid formats.
    """
    raw = text.strip()
    if ":" in raw:
        parts = raw.split(":")
    elif raw.isdigit() and len(raw) in (3, 4):
        parts = [raw[:-2], raw[-2:]]
    else:
        parts = []

    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValidationError(f"Invalid time format: {text!r} (expected HH:MM)")

    h = int(parts[0])
    m = int(parts[1])
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValidationError(f"Invalid time value: {text!r}")
    return h, m


def parse_days(text: str) -> List[Weekday]:
    """
    Parse 'Mon,Wed' or 'Tue/Thu' into weekdays, keeping editor order
    (Monday first) and dropping duplicates.
    """
    days: set[Weekday] = set()
    for chunk in text.replace("/", ",").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            days.add(Weekday.parse(chunk))
        except ValueError:
            raise ValidationError(f"Unknown weekday: {chunk!r}") from None
    if not days:
        raise ValidationError("At least one weekday is required")
    return [d for d in Weekday.monday_first() if d in days]


def parse_meeting_spec(
    spec: str, course_id: Optional[str] = None, default_type: str = DEFAULT_MEETING_TYPE
) -> List[CourseMeeting]:
    """
    Parse one meeting spec into one CourseMeeting per weekday.
    A spec without a session type gets default_type.
    """
    raw = spec.strip()
    parts = raw.split(None, 2)
    if len(parts) < 2:
        raise ValidationError(f"Invalid meeting {spec!r} (expected e.g. 'Tue 09:00-09:50 Class')")

    days = parse_days(parts[0])

    time_str = parts[1]
    if "-" not in time_str:
        raise ValidationError(f"Invalid time window {time_str!r} (expected HH:MM-HH:MM)")
    start_s, end_s = [t.strip() for t in time_str.split("-", 1)]
    sh, sm = parse_clock(start_s)
    eh, em = parse_clock(end_s)

    meeting_type = parts[2].strip() if len(parts) > 2 else default_type

    return [
        CourseMeeting(
            day_of_week=day,
            start_hour=sh,
            start_minute=sm,
            end_hour=eh,
            end_minute=em,
            meeting_type=meeting_type,
            course_id=course_id,
        )
        for day in days
    ]


def parse_meeting_specs(
    specs: List[str], course_id: Optional[str] = None, default_type: str = DEFAULT_MEETING_TYPE
) -> List[CourseMeeting]:
    out: List[CourseMeeting] = []
    for spec in specs:
        out.extend(parse_meeting_spec(spec, course_id, default_type))
    return out


def parse_date(text: str) -> date:
    """
    Accept ISO dates (2026-02-19) and the Swiss/German style 19.02.2026.
    """
    raw = text.strip()
    for fmt in ("%Y-%m-%d", "%d.%m.%Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Invalid date: {text!r} (expected YYYY-MM-DD)")


def parse_datetime(text: str) -> datetime:
    """
    Accept 'YYYY-MM-DD' (midnight) or 'YYYY-MM-DD HH:MM' / ISO 'YYYY-MM-DDTHH:MM'.
    """
    raw = text.strip()
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        pass
    try:
        d = parse_date(raw)
    except ValidationError:
        raise ValidationError(f"Invalid date/time: {text!r} (expected YYYY-MM-DD HH:MM)") from None
    return datetime.combine(d, datetime.min.time())
