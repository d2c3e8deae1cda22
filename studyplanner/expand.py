"""
Schedule expansion (weekly meeting pattern -> dated lectures).

Given a course's CourseMeetings and a date range, build one Lecture for
every calendar day in the range whose weekday matches a meeting.

Rules:
- the range is inclusive on both ends
- start > end yields no lectures (no error)
- no meetings yields no lectures (asynchronous course)
- two meetings on the same weekday give two lectures on that day
- output is ordered by date, then by the meeting's start time; meetings
  with the same start keep their input order
- a meeting whose weekday is not 1..7 is skipped with a warning

The function is pure: it never touches the store. Deleting the previous
lectures and inserting the result is the job of studyplanner.schedule.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Optional, Union

from studyplanner.model import DEFAULT_LECTURE_TITLE, Course, CourseMeeting, Lecture, Weekday

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


class LocalCalendar:
    """
    The calendar used to decide which weekday a date falls on and how a
    meeting's wall-clock time is attached to that date.

    tz=None means naive local wall-clock datetimes.
    """

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self.tz = tz

    def day_of(self, value: DateLike) -> date:
        """Reduce a date or datetime to the calendar day it falls on here."""
        if isinstance(value, datetime):
            if value.tzinfo is not None and self.tz is not None:
                value = value.astimezone(self.tz)
            return value.date()
        return value

    def weekday(self, d: date) -> Weekday:
        return Weekday.from_date(d)

    def at(self, d: date, hour: int, minute: int) -> datetime:
        return datetime.combine(d, time(hour, minute), tzinfo=self.tz)

    def __repr__(self) -> str:
        return f"LocalCalendar(tz={self.tz!r})"


def _default_title(meeting: CourseMeeting) -> str:
    label = (meeting.meeting_type or "").strip()
    return label if label else DEFAULT_LECTURE_TITLE


def expand(
    course: Optional[Course],
    meetings: Iterable[CourseMeeting],
    range_start: DateLike,
    range_end: DateLike,
    *,
    title: Optional[str] = None,
    calendar: Optional[LocalCalendar] = None,
) -> list[Lecture]:
    """
    Expand weekly meetings into concrete lectures over [range_start, range_end].

    title overrides the default lecture title (the meeting type).
    """
    cal = calendar or LocalCalendar()
    first = cal.day_of(range_start)
    last = cal.day_of(range_end)
    if first > last:
        return []

    # Group by weekday, keep input order within a day for stable ties
    by_day: dict[Weekday, list[CourseMeeting]] = defaultdict(list)
    for meeting in meetings:
        try:
            day = Weekday(int(meeting.day_of_week))
        except (TypeError, ValueError):
            logger.warning("Skipping meeting with invalid weekday %r", meeting.day_of_week)
            continue
        by_day[day].append(meeting)
    if not by_day:
        return []

    course_id = course.id if course is not None else None

    rows: list[tuple[date, int, int, Lecture]] = []
    seq = 0
    d = first
    while d <= last:
        for meeting in by_day.get(cal.weekday(d), []):
            lecture = Lecture(
                title=title if title else _default_title(meeting),
                date=cal.at(d, meeting.start_hour, meeting.start_minute),
                course_id=course_id,
                meeting_type=meeting.meeting_type,
            )
            rows.append((d, meeting.start_minutes, seq, lecture))
            seq += 1
        d += timedelta(days=1)

    rows.sort(key=lambda r: (r[0], r[1], r[2]))
    return [r[3] for r in rows]


def count_weekdays(weekday: Weekday, range_start: date, range_end: date) -> int:
    """
    Number of days in [range_start, range_end] that fall on `weekday`.
    Closed form, used to cross-check expansion results.
    """
    if range_start > range_end:
        return 0
    offset = (int(weekday) - int(Weekday.from_date(range_start))) % 7
    first = range_start + timedelta(days=offset)
    if first > range_end:
        return 0
    return (range_end - first).days // 7 + 1
