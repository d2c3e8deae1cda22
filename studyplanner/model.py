"""
Central data model definitions used across the project.

This module defines the canonical structure of every planner record so that:
- all modules share the same field names
- the expansion engine, the store and the CLI agree on one shape
- relationships are plain id references (course_id, lecture_id, ...)
  that the store resolves and cascades

Ownership:
    Term 1 --- * Course 1 --- * CourseMeeting
                        1 --- * Lecture 1 --- * LectureNote / LectureFile / LectureTask
                        1 --- * Assignment / Syllabus
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import IntEnum
from typing import Optional

from dateutil.relativedelta import relativedelta


DEFAULT_COLOR = "#4ECDC4"
DEFAULT_MEETING_TYPE = "Class"
DEFAULT_LECTURE_TITLE = "Lecture"
TERM_TYPES = ("Semester", "Quarter")
MEETING_TYPES = ("Class", "Discussion", "Lab", "Workshop", "Study Session", "Office Hours")
PRIORITIES = ("Low", "Medium", "High")


def new_id() -> str:
    return str(uuid.uuid4())


class Weekday(IntEnum):
    """
    Day of week with Sunday-first numbering (1 = Sunday ... 7 = Saturday).

    Python's date.weekday() is Monday-first and zero-based, so every
    conversion goes through this type instead of raw integers.
    """

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @classmethod
    def from_date(cls, d: date) -> "Weekday":
        # date.weekday(): Monday=0 .. Sunday=6
        return cls((d.weekday() + 1) % 7 + 1)

    @classmethod
    def monday_first(cls) -> list["Weekday"]:
        """Ordering used by the meeting pattern editor (Mon .. Sun)."""
        return [cls.MONDAY, cls.TUESDAY, cls.WEDNESDAY, cls.THURSDAY, cls.FRIDAY, cls.SATURDAY, cls.SUNDAY]

    @classmethod
    def parse(cls, text: str) -> "Weekday":
        """
        Accept "tue", "Tuesday", "TU" or the Sunday-first number "3".
        Raises ValueError for anything else.
        """
        raw = str(text).strip()
        if raw.isdigit():
            return cls(int(raw))
        key = raw.lower()
        for day in cls:
            name = day.name.lower()
            if len(key) >= 2 and name.startswith(key):
                return day
        raise ValueError(f"Unknown weekday: {text!r}")

    @property
    def short_label(self) -> str:
        return self.name[:3].title()


@dataclass
class Term:
    """
    A named academic period (e.g. "Fall Semester") shared by several courses.
    """

    name: str
    start_date: date
    end_date: date
    id: str = field(default_factory=new_id)


@dataclass
class CourseMeeting:
    """
    One weekly recurring time slot of a course.
    """

    day_of_week: Weekday
    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int
    meeting_type: str = DEFAULT_MEETING_TYPE
    course_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    @property
    def start_minutes(self) -> int:
        return self.start_hour * 60 + self.start_minute

    @property
    def end_minutes(self) -> int:
        return self.end_hour * 60 + self.end_minute

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def start_time(self) -> time:
        return time(self.start_hour, self.start_minute)

    @property
    def end_time(self) -> time:
        return time(self.end_hour, self.end_minute)

    def describe(self) -> str:
        try:
            day = Weekday(int(self.day_of_week)).short_label
        except (TypeError, ValueError):
            day = f"day {self.day_of_week!r}"
        return (
            f"{day} "
            f"{self.start_hour:02d}:{self.start_minute:02d}-{self.end_hour:02d}:{self.end_minute:02d} "
            f"{self.meeting_type}"
        )


@dataclass
class Course:
    """
    Represents one course of the user's plan.

    term_start_date / term_end_date are ad-hoc overrides; when set they win
    over the referenced Term (see effective_range).
    """

    name: str
    detail: Optional[str] = None
    color: str = DEFAULT_COLOR
    created_date: datetime = field(default_factory=datetime.now)
    term_type: Optional[str] = None
    units: Optional[int] = None
    term_start_date: Optional[date] = None
    term_end_date: Optional[date] = None
    term_id: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Lecture:
    """
    One concrete, dated occurrence of a course meeting.

    `date` carries both the calendar day and the wall-clock start time.
    """

    title: str
    date: datetime
    course_id: Optional[str] = None
    notes: Optional[str] = None
    meeting_type: Optional[str] = None
    id: str = field(default_factory=new_id)

    def occurrence_key(self) -> tuple[datetime, Optional[str]]:
        return (self.date, self.meeting_type)

    def wall_clock_key(self) -> tuple[date, time]:
        # Naive and aware datetimes cannot be compared directly
        return (self.date.date(), self.date.time())


@dataclass
class LectureNote:
    content: str
    lecture_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)


@dataclass
class LectureFile:
    filename: str
    lecture_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)


@dataclass
class LectureTask:
    title: str
    lecture_id: Optional[str] = None
    details: Optional[str] = None
    due_date: Optional[datetime] = None
    is_completed: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    assignment_id: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Assignment:
    title: str
    course_id: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    is_completed: bool = False
    priority: str = "Medium"
    created_date: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)


@dataclass
class Syllabus:
    title: str
    content: str
    course_id: Optional[str] = None
    last_modified: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)


def effective_range(
    course: Course,
    term: Optional[Term] = None,
    today: Optional[date] = None,
    default_months: int = 3,
) -> tuple[date, date]:
    """
    Resolve the date range a course's lectures are generated for.

    Resolution order: ad-hoc course override, then the shared Term,
    then today / today + default_months.
    """
    today = today or date.today()

    start = course.term_start_date
    if start is None and term is not None:
        start = term.start_date
    if start is None:
        start = today

    end = course.term_end_date
    if end is None and term is not None:
        end = term.end_date
    if end is None:
        end = today + relativedelta(months=default_months)

    return start, end
