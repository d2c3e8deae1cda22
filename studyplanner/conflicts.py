"""
Conflict detection.

Given the weekly meetings of several courses, detect slots that overlap on
the same weekday.
Overlap rule:
    start < other_end AND end > other_start

Meetings of courses whose term windows never overlap (e.g. a fall and a
spring course) are not in conflict even if their weekly slots are.

find_lecture_conflicts works on the dated lectures instead, so it also
sees clashes that only exist on some dates (short ad-hoc windows, lectures
kept from an earlier pattern).
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Mapping, Optional

from studyplanner.model import CourseMeeting, Lecture, Weekday


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def _ranges_overlap(a: tuple[date, date], b: tuple[date, date]) -> bool:
    return a[0] <= b[1] and b[0] <= a[1]


def find_conflicts(
    meetings: list[CourseMeeting],
    ranges: Optional[Mapping[str, tuple[date, date]]] = None,
) -> list[tuple[CourseMeeting, CourseMeeting]]:
    """
    Find overlapping meeting pairs (A,B), each pair appears once (i<j).

    ranges maps course_id -> effective (start, end); when given, pairs whose
    courses are never active at the same time are skipped.
    """
    conflicts: list[tuple[CourseMeeting, CourseMeeting]] = []

    # if end <= start, treat as invalid / skip (avoid weird conflicts)
    valid = [m for m in meetings if m.end_minutes > m.start_minutes]

    # O(n^2) is fine for a personal timetable
    for i in range(len(valid)):
        m1 = valid[i]
        for j in range(i + 1, len(valid)):
            m2 = valid[j]
            if int(m1.day_of_week) != int(m2.day_of_week):
                continue
            if not _overlaps(m1.start_minutes, m1.end_minutes, m2.start_minutes, m2.end_minutes):
                continue
            if ranges is not None:
                r1 = ranges.get(m1.course_id or "")
                r2 = ranges.get(m2.course_id or "")
                if r1 is not None and r2 is not None and not _ranges_overlap(r1, r2):
                    continue
            conflicts.append((m1, m2))

    return conflicts


def _duration_index(meetings: Iterable[CourseMeeting]) -> dict[tuple, int]:
    index: dict[tuple, int] = {}
    for m in meetings:
        if m.end_minutes <= m.start_minutes:
            continue
        try:
            key = (m.course_id, int(m.day_of_week), m.start_minutes, m.meeting_type)
        except (TypeError, ValueError):
            continue
        index[key] = max(index.get(key, 0), m.duration_minutes)
    return index


def find_lecture_conflicts(
    lectures: Iterable[Lecture],
    meetings: Iterable[CourseMeeting],
) -> list[tuple[Lecture, Lecture]]:
    """
    Find overlapping dated lectures, each pair once, in chronological order.

    A lecture lasts as long as the meeting it was generated from (same
    course, weekday, start time and type). Lectures without such a meeting
    have no known length and are skipped.
    """
    durations = _duration_index(meetings)

    by_day: dict[date, list[tuple[int, int, Lecture]]] = defaultdict(list)
    for lec in sorted(lectures, key=Lecture.wall_clock_key):
        day, clock = lec.wall_clock_key()
        start = clock.hour * 60 + clock.minute
        key = (lec.course_id, int(Weekday.from_date(day)), start, lec.meeting_type)
        length = durations.get(key)
        if length is None:
            continue
        by_day[day].append((start, start + length, lec))

    conflicts: list[tuple[Lecture, Lecture]] = []
    for day in sorted(by_day):
        slots = by_day[day]
        for i in range(len(slots)):
            s1, e1, l1 = slots[i]
            for j in range(i + 1, len(slots)):
                s2, e2, l2 = slots[j]
                if s2 >= e1:
                    # sorted by start: nothing later can overlap l1
                    break
                if _overlaps(s1, e1, s2, e2):
                    conflicts.append((l1, l2))
    return conflicts
