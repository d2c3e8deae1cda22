"""
Course lifecycle coordination (meeting pattern edits -> stored lectures).

Whenever a course is created with a meeting pattern, its pattern or term
window is edited, or its meetings are cleared, the course's generated
lectures are rebuilt here:

1. the new meetings and the new lecture list are computed off to the side
2. inside one store transaction the old meetings and lectures are removed,
   the new ones inserted and the store saved (when the caller already holds
   a transaction, e.g. update_term, the save happens once at its end)
3. any failure restores the previous in-memory state and propagates;
   failures that are not PlannerErrors surface as PersistenceError

By default regeneration is destructive: notes, files and tasks attached to
the old lectures are deleted with them. preserve_content=True keeps every
old lecture whose (date, meeting type) still occurs in the new schedule.

Requests for the same course are serialized with a per-course lock.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Optional

from studyplanner.errors import PersistenceError, PlannerError, ScheduleError
from studyplanner.expand import LocalCalendar, expand
from studyplanner.model import Course, CourseMeeting, Lecture, Term, effective_range
from studyplanner.storage import PlannerStore
from studyplanner.validation import validate_course, validate_meetings, validate_range

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    created: int = 0
    deleted: int = 0
    kept: int = 0
    lectures: list[Lecture] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Per-course serialization
# ---------------------------------------------------------------------------

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()
_active = threading.local()


def _course_lock(course_id: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(course_id)
        if lock is None:
            lock = _locks[course_id] = threading.Lock()
        return lock


class _Serialized:
    """
    Hold the course's lock for the duration of one regeneration.

    Another thread asking for the same course waits. The same thread asking
    again (e.g. from a callback) would deadlock on a plain Lock, so that
    case raises ScheduleError instead.
    """

    def __init__(self, course_id: str) -> None:
        self.course_id = course_id
        self.lock = _course_lock(course_id)

    def __enter__(self) -> None:
        in_flight: set[str] = getattr(_active, "courses", set())
        if self.course_id in in_flight:
            raise ScheduleError(f"Schedule for course {self.course_id} is already being regenerated")
        self.lock.acquire()
        in_flight.add(self.course_id)
        _active.courses = in_flight

    def __exit__(self, *exc_info: object) -> None:
        _active.courses.discard(self.course_id)
        self.lock.release()


# ---------------------------------------------------------------------------
# Regeneration
# ---------------------------------------------------------------------------


def _split_by_key(
    old: list[Lecture], new: list[Lecture]
) -> tuple[list[Lecture], list[Lecture], list[Lecture]]:
    """
    Match old and new lectures by (date, meeting type), as multisets.

    Returns (keep, delete, insert).
    """
    pool: dict[tuple, list[Lecture]] = defaultdict(list)
    for lecture in old:
        pool[lecture.occurrence_key()].append(lecture)

    keep: list[Lecture] = []
    insert: list[Lecture] = []
    for lecture in new:
        matches = pool.get(lecture.occurrence_key())
        if matches:
            keep.append(matches.pop(0))
        else:
            insert.append(lecture)

    delete = [lecture for rest in pool.values() for lecture in rest]
    return keep, delete, insert


def regenerate_schedule(
    store: PlannerStore,
    course: Course,
    meetings: Iterable[CourseMeeting],
    date_range: Optional[tuple[date, date]] = None,
    *,
    title: Optional[str] = None,
    calendar: Optional[LocalCalendar] = None,
    today: Optional[date] = None,
    term_months: int = 3,
    preserve_content: bool = False,
) -> ScheduleResult:
    """
    Replace a course's meeting pattern and rebuild its lectures.

    date_range, when given, becomes the course's ad-hoc term window.
    Otherwise the course's effective range (override, Term, default) is used.
    """
    new_meetings = [replace(m, course_id=course.id) for m in meetings]
    for m in new_meetings:
        if m.end_minutes <= m.start_minutes:
            logger.warning("Meeting %s ends before it starts; expanding it anyway", m.describe())

    with _Serialized(course.id):
        try:
            window = replace(course)
            if date_range is not None:
                window.term_start_date, window.term_end_date = date_range
            start, end = effective_range(window, store.term_of(course), today=today, default_months=term_months)
            if start > end:
                logger.warning("Course %r has an inverted date range %s..%s", course.name, start, end)

            new_lectures = expand(course, new_meetings, start, end, title=title, calendar=calendar)

            with store.transaction():
                store.insert(course)
                if date_range is not None:
                    course.term_start_date, course.term_end_date = date_range

                for old_meeting in store.meetings_of(course):
                    store.delete(old_meeting)
                for m in new_meetings:
                    store.insert(m)

                old_lectures = store.lectures_of(course)
                if preserve_content:
                    keep, delete, insert = _split_by_key(old_lectures, new_lectures)
                else:
                    keep, delete, insert = [], old_lectures, new_lectures

                lost = sum(1 for lecture in delete if store.has_user_content(lecture))
                if lost:
                    logger.warning("Regenerating %r discards user content on %d lecture(s)", course.name, lost)

                for lecture in delete:
                    store.delete(lecture)
                for lecture in insert:
                    store.insert(lecture)

                store.commit()
        except PlannerError:
            raise
        except Exception as exc:
            logger.exception("Regenerating %r failed", course.name)
            raise PersistenceError(f"Could not regenerate the schedule of {course.name!r}: {exc}") from exc

    result = ScheduleResult(
        created=len(insert),
        deleted=len(delete),
        kept=len(keep),
        lectures=sorted(keep + insert, key=Lecture.wall_clock_key),
    )
    logger.info(
        "Regenerated %r over %s..%s: %d created, %d deleted, %d kept",
        course.name,
        start,
        end,
        result.created,
        result.deleted,
        result.kept,
    )
    return result


def clear_schedule(
    store: PlannerStore,
    course: Course,
    date_range: Optional[tuple[date, date]] = None,
    **kwargs,
) -> ScheduleResult:
    """
    Remove all meetings and every generated lecture of a course.
    A date_range given here is still stored as the course window.
    """
    return regenerate_schedule(store, course, [], date_range, **kwargs)


def update_term_window(
    store: PlannerStore,
    course: Course,
    start: date,
    end: date,
    **kwargs,
) -> ScheduleResult:
    """Move a course's ad-hoc term window and re-expand its current meetings."""
    validate_range(start, end)
    meetings = store.meetings_of(course)
    return regenerate_schedule(store, course, meetings, (start, end), **kwargs)


def update_term(
    store: PlannerStore,
    term: Term,
    start: date,
    end: date,
    **kwargs,
) -> list[ScheduleResult]:
    """
    Change a Term's dates and rebuild the lectures of every course that
    follows the Term (courses with their own window are left alone).
    """
    validate_range(start, end)
    results: list[ScheduleResult] = []
    with store.transaction():
        term.start_date, term.end_date = start, end
        for course in store.courses_of_term(term):
            if course.term_start_date is not None and course.term_end_date is not None:
                continue
            results.append(regenerate_schedule(store, course, store.meetings_of(course), **kwargs))
        store.commit()
    return results


def create_course(
    store: PlannerStore,
    course: Course,
    meetings: Iterable[CourseMeeting] = (),
    **kwargs,
) -> ScheduleResult:
    """
    Add a new course together with its initial meeting pattern.

    The course, its meetings and its lectures are stored as one unit.
    """
    meetings = list(meetings)
    validate_course(course)
    validate_meetings(meetings)
    if store.find_course(course.name) is not None:
        raise ScheduleError(f"A course named {course.name!r} already exists")

    with store.transaction():
        store.insert(course)
        result = regenerate_schedule(store, course, meetings, **kwargs)
        store.commit()
    return result


def delete_course(store: PlannerStore, course: Course) -> None:
    with _Serialized(course.id):
        with store.transaction():
            store.delete(course)
            store.commit()
    logger.info("Deleted course %r", course.name)
