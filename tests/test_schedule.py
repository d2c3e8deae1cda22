"""
Tests for schedule regeneration (pattern edits -> stored lectures).

Contract:
- after regeneration the course's lectures equal expand(new pattern) exactly
- an empty pattern leaves the course without lectures
- by default user content on old lectures is deleted with them;
  preserve_content keeps lectures whose (date, type) still occurs
- a failing save rolls the in-memory store back
- operations spanning several courses write the file once, at the end
"""

import tempfile
import threading
import unittest
from collections import Counter
from datetime import date, datetime
from pathlib import Path
from unittest import mock
from zoneinfo import ZoneInfo

from studyplanner.errors import PersistenceError, ScheduleError, ValidationError
from studyplanner.expand import LocalCalendar, expand
from studyplanner.model import Course, CourseMeeting, Lecture, LectureNote, LectureTask, Term, Weekday
from studyplanner.schedule import (
    _Serialized,
    clear_schedule,
    create_course,
    delete_course,
    regenerate_schedule,
    update_term,
    update_term_window,
)
from studyplanner.storage import PlannerStore

RANGE = (date(2026, 8, 31), date(2026, 9, 13))


def meeting(day, sh, eh, kind="Class"):
    return CourseMeeting(day_of_week=day, start_hour=sh, start_minute=0, end_hour=eh, end_minute=0, meeting_type=kind)


def keys(lectures):
    return Counter((lec.date, lec.meeting_type) for lec in lectures)


class TestRegenerate(unittest.TestCase):
    def setUp(self) -> None:
        self.store = PlannerStore()
        self.course = Course(name="Physics")
        self.p1 = [meeting(Weekday.TUESDAY, 9, 10), meeting(Weekday.THURSDAY, 9, 10)]
        self.p2 = [meeting(Weekday.MONDAY, 13, 14, "Lab"), meeting(Weekday.MONDAY, 15, 16, "Discussion")]

    def test_initial_generation_stores_course_meetings_and_lectures(self) -> None:
        result = regenerate_schedule(self.store, self.course, self.p1, RANGE)

        self.assertIs(self.store.find_course("physics"), self.course)
        self.assertEqual(len(self.store.meetings_of(self.course)), 2)
        self.assertEqual(result.created, 4)
        self.assertEqual(result.deleted, 0)
        self.assertEqual(len(self.store.lectures_of(self.course)), 4)
        self.assertEqual((self.course.term_start_date, self.course.term_end_date), RANGE)

    def test_p1_to_p2_leaves_no_p1_lectures(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        result = regenerate_schedule(self.store, self.course, self.p2, RANGE)

        stored = self.store.lectures_of(self.course)
        self.assertEqual(keys(stored), keys(expand(self.course, self.p2, *RANGE)))
        self.assertEqual(result.deleted, 4)
        self.assertEqual({m.meeting_type for m in self.store.meetings_of(self.course)}, {"Lab", "Discussion"})
        self.assertEqual(len(self.store.all(CourseMeeting)), 2)

    def test_empty_pattern_clears_lectures(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        result = clear_schedule(self.store, self.course)

        self.assertEqual(result.deleted, 4)
        self.assertEqual(self.store.lectures_of(self.course), [])
        self.assertEqual(self.store.meetings_of(self.course), [])

    def test_regenerating_twice_is_idempotent(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        first = keys(self.store.lectures_of(self.course))
        regenerate_schedule(self.store, self.course, self.p1, RANGE)

        self.assertEqual(keys(self.store.lectures_of(self.course)), first)
        self.assertEqual(len(self.store.all(Lecture)), 4)

    def test_other_courses_are_untouched(self) -> None:
        other = Course(name="Chemistry")
        regenerate_schedule(self.store, other, [meeting(Weekday.FRIDAY, 8, 9)], RANGE)
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        clear_schedule(self.store, self.course)

        self.assertEqual(len(self.store.lectures_of(other)), 2)

    def test_destructive_default_drops_lecture_content(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        lec = self.store.lectures_of(self.course)[0]
        self.store.insert(LectureNote(content="bring calculator", lecture_id=lec.id))

        with self.assertLogs("studyplanner.schedule", level="WARNING"):
            regenerate_schedule(self.store, self.course, self.p1, RANGE)

        self.assertIsNone(self.store.get(Lecture, lec.id))
        self.assertEqual(self.store.all(LectureNote), [])

    def test_preserve_content_keeps_matching_lectures(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        tuesday = [lec for lec in self.store.lectures_of(self.course) if lec.date.weekday() == 1][0]
        self.store.insert(LectureNote(content="chapter 2", lecture_id=tuesday.id))

        # keep Tuesday, drop Thursday, add Friday
        new_pattern = [meeting(Weekday.TUESDAY, 9, 10), meeting(Weekday.FRIDAY, 9, 10)]
        result = regenerate_schedule(self.store, self.course, new_pattern, RANGE, preserve_content=True)

        self.assertEqual((result.kept, result.deleted, result.created), (2, 2, 2))
        self.assertIs(self.store.get(Lecture, tuesday.id), tuesday)
        self.assertEqual(len(self.store.notes_of(tuesday)), 1)
        self.assertEqual(keys(self.store.lectures_of(self.course)), keys(expand(self.course, new_pattern, *RANGE)))

    def test_update_term_window_reexpands_current_meetings(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        result = update_term_window(self.store, self.course, date(2026, 8, 31), date(2026, 9, 27))

        self.assertEqual(len(result.lectures), 8)
        self.assertEqual(self.course.term_end_date, date(2026, 9, 27))
        self.assertEqual(len(self.store.meetings_of(self.course)), 2)

    def test_update_term_window_rejects_inverted_range(self) -> None:
        with self.assertRaises(ValidationError):
            update_term_window(self.store, self.course, date(2026, 9, 27), date(2026, 8, 31))

    def test_inverted_range_generates_nothing(self) -> None:
        result = regenerate_schedule(self.store, self.course, self.p1, (RANGE[1], RANGE[0]))
        self.assertEqual(result.created, 0)

    def test_range_falls_back_to_term(self) -> None:
        term = Term(name="Fall", start_date=date(2026, 8, 31), end_date=date(2026, 9, 6))
        self.store.insert(term)
        self.course.term_id = term.id

        result = regenerate_schedule(self.store, self.course, self.p1)

        self.assertEqual(result.created, 2)
        self.assertIsNone(self.course.term_start_date)

    def test_range_falls_back_to_today(self) -> None:
        result = regenerate_schedule(self.store, self.course, self.p1, today=date(2026, 9, 1), term_months=1)
        # 2026-09-01 .. 2026-10-01: 5 Tuesdays + 5 Thursdays
        self.assertEqual(result.created, 10)

    def test_explicit_title(self) -> None:
        result = regenerate_schedule(self.store, self.course, self.p1, RANGE, title="PHYS 101")
        self.assertEqual({lec.title for lec in result.lectures}, {"PHYS 101"})

    def test_clear_with_range_stores_new_window(self) -> None:
        regenerate_schedule(self.store, self.course, self.p1, RANGE)
        window = (date(2026, 9, 14), date(2026, 9, 27))
        result = clear_schedule(self.store, self.course, window)

        self.assertEqual(result.deleted, 4)
        self.assertEqual((self.course.term_start_date, self.course.term_end_date), window)
        self.assertEqual(self.store.meetings_of(self.course), [])

    def test_mixed_naive_and_aware_lectures(self) -> None:
        zurich = LocalCalendar(ZoneInfo("Europe/Zurich"))
        regenerate_schedule(self.store, self.course, self.p1, RANGE, calendar=zurich)
        # hand-made lecture from before a timezone was configured
        self.store.insert(Lecture(title="Review", date=datetime(2026, 9, 1, 8, 0), course_id=self.course.id))

        ordered = self.store.lectures_of(self.course)
        self.assertEqual(ordered[0].title, "Review")
        self.assertEqual(len(ordered), 5)

        new_pattern = [meeting(Weekday.TUESDAY, 9, 10), meeting(Weekday.FRIDAY, 9, 10)]
        result = regenerate_schedule(
            self.store, self.course, new_pattern, RANGE, calendar=zurich, preserve_content=True
        )
        self.assertEqual((result.kept, result.created), (2, 2))
        self.assertEqual(
            [lec.date.strftime("%a %d") for lec in result.lectures],
            ["Tue 01", "Fri 04", "Tue 08", "Fri 11"],
        )


class TestFailures(unittest.TestCase):
    def test_failed_save_rolls_back(self) -> None:
        store = PlannerStore()
        course = Course(name="Biology")
        regenerate_schedule(store, course, [meeting(Weekday.TUESDAY, 9, 10)], RANGE)
        before = [lec.id for lec in store.lectures_of(course)]

        with mock.patch.object(store, "save", side_effect=PersistenceError("disk full")):
            with self.assertRaises(PersistenceError):
                regenerate_schedule(store, course, [meeting(Weekday.MONDAY, 9, 10)], (date(2026, 9, 1), date(2026, 9, 30)))

        self.assertEqual([lec.id for lec in store.lectures_of(course)], before)
        self.assertEqual([m.day_of_week for m in store.meetings_of(course)], [Weekday.TUESDAY])
        self.assertEqual(course.term_end_date, RANGE[1])

    def test_unwritable_file_raises_persistence_error(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            blocker = Path(d) / "blocker"
            blocker.write_text("not a directory", encoding="utf-8")
            store = PlannerStore(blocker / "planner.json")
            course = Course(name="Art")

            with self.assertRaises(PersistenceError):
                regenerate_schedule(store, course, [meeting(Weekday.TUESDAY, 9, 10)], RANGE)
            self.assertEqual(store.all(Course), [])
            self.assertEqual(store.all(Lecture), [])

    def _term_with_two_courses(self, path: Path) -> tuple[PlannerStore, Term, Course, Course]:
        store = PlannerStore(path)
        term = Term(name="Fall", start_date=date(2026, 8, 31), end_date=date(2026, 9, 13))
        store.insert(term)
        first = Course(name="Chemistry", term_id=term.id)
        second = Course(name="Geology", term_id=term.id)
        regenerate_schedule(store, first, [meeting(Weekday.TUESDAY, 9, 10)])
        regenerate_schedule(store, second, [meeting(Weekday.THURSDAY, 9, 10)])
        return store, term, first, second

    def test_update_term_saves_once(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            store, term, first, second = self._term_with_two_courses(Path(d) / "planner.json")

            with mock.patch.object(store, "save", wraps=store.save) as save:
                update_term(store, term, date(2026, 8, 31), date(2026, 9, 27))

            self.assertEqual(save.call_count, 1)
            reloaded = PlannerStore.open(Path(d) / "planner.json")
            self.assertEqual(reloaded.find_term("Fall").end_date, date(2026, 9, 27))
            self.assertEqual(len(reloaded.all(Lecture)), 8)

    def test_update_term_failing_on_second_course_leaves_file_untouched(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "planner.json"
            store, term, first, second = self._term_with_two_courses(path)
            on_disk = path.read_text(encoding="utf-8")
            first_ids = [lec.id for lec in store.lectures_of(first)]

            calls: list[int] = []

            def fail_second(*args, **kwargs):
                calls.append(1)
                if len(calls) == 2:
                    raise RuntimeError("expansion blew up")
                return expand(*args, **kwargs)

            with mock.patch("studyplanner.schedule.expand", side_effect=fail_second):
                with self.assertRaises(PersistenceError):
                    update_term(store, term, date(2026, 8, 31), date(2026, 9, 27))

            self.assertEqual(path.read_text(encoding="utf-8"), on_disk)
            self.assertEqual(term.end_date, date(2026, 9, 13))
            self.assertEqual([lec.id for lec in store.lectures_of(first)], first_ids)
            self.assertEqual(len(store.all(Lecture)), 4)

    def test_update_term_failing_save_leaves_file_untouched(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "planner.json"
            store, term, first, second = self._term_with_two_courses(path)
            on_disk = path.read_text(encoding="utf-8")

            with mock.patch.object(store, "save", side_effect=PersistenceError("disk full")):
                with self.assertRaises(PersistenceError):
                    update_term(store, term, date(2026, 8, 31), date(2026, 9, 27))

            self.assertEqual(path.read_text(encoding="utf-8"), on_disk)
            self.assertEqual(term.end_date, date(2026, 9, 13))
            self.assertEqual(len(store.all(Lecture)), 4)

    def test_create_course_saves_once(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            store = PlannerStore(Path(d) / "planner.json")
            with mock.patch.object(store, "save", wraps=store.save) as save:
                create_course(store, Course(name="Botany"), [meeting(Weekday.TUESDAY, 9, 10)], date_range=RANGE)
            self.assertEqual(save.call_count, 1)

    def test_unexpected_error_surfaces_as_persistence_error(self) -> None:
        store = PlannerStore()
        course = Course(name="Zoology")
        regenerate_schedule(store, course, [meeting(Weekday.TUESDAY, 9, 10)], RANGE)
        before = [lec.id for lec in store.lectures_of(course)]

        with mock.patch.object(store, "delete", side_effect=RuntimeError("store broke")):
            with self.assertRaises(PersistenceError) as ctx:
                regenerate_schedule(store, course, [meeting(Weekday.MONDAY, 9, 10)], RANGE)

        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual([lec.id for lec in store.lectures_of(course)], before)
        self.assertEqual([m.day_of_week for m in store.meetings_of(course)], [Weekday.TUESDAY])

    def test_planner_errors_are_not_wrapped(self) -> None:
        store = PlannerStore()
        with mock.patch("studyplanner.schedule.expand", side_effect=ValidationError("bad meeting")):
            with self.assertRaises(ValidationError):
                regenerate_schedule(store, Course(name="Latin"), [meeting(Weekday.TUESDAY, 9, 10)], RANGE)
        self.assertEqual(store.all(Course), [])

    def test_nested_request_for_same_course_is_refused(self) -> None:
        course = Course(name="History")
        with _Serialized(course.id):
            with self.assertRaises(ScheduleError):
                regenerate_schedule(PlannerStore(), course, [], RANGE)

    def test_concurrent_requests_are_serialized(self) -> None:
        store = PlannerStore()
        course = Course(name="Music")
        patterns = [
            [meeting(Weekday.TUESDAY, 9, 10)],
            [meeting(Weekday.MONDAY, 9, 10), meeting(Weekday.FRIDAY, 9, 10)],
        ]
        errors: list[BaseException] = []

        def run(pattern) -> None:
            try:
                for _ in range(20):
                    regenerate_schedule(store, course, pattern, RANGE)
            except BaseException as exc:  # surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=run, args=(p,)) for p in patterns]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        stored = store.lectures_of(course)
        self.assertIn(len(stored), (2, 4))
        days = {m.day_of_week for m in store.meetings_of(course)}
        self.assertEqual(keys(stored), keys(expand(course, store.meetings_of(course), *RANGE)))
        self.assertIn(days, ({Weekday.TUESDAY}, {Weekday.MONDAY, Weekday.FRIDAY}))


class TestCourseLifecycle(unittest.TestCase):
    def test_create_course_validates_and_generates(self) -> None:
        store = PlannerStore()
        course = Course(name="Statistics", units=4, term_type="Semester")
        result = create_course(store, course, [meeting(Weekday.TUESDAY, 9, 10)], date_range=RANGE)

        self.assertEqual(result.created, 2)
        self.assertIs(store.find_course("Statistics"), course)

    def test_create_course_rejects_bad_meeting(self) -> None:
        store = PlannerStore()
        with self.assertRaises(ValidationError):
            create_course(store, Course(name="Bad"), [meeting(Weekday.TUESDAY, 10, 9)], date_range=RANGE)
        self.assertEqual(store.all(Course), [])

    def test_create_course_rejects_duplicate_name(self) -> None:
        store = PlannerStore()
        create_course(store, Course(name="Statistics"), [], date_range=RANGE)
        with self.assertRaises(ScheduleError):
            create_course(store, Course(name="statistics"), [], date_range=RANGE)

    def test_delete_course_cascades(self) -> None:
        store = PlannerStore()
        course = Course(name="Economics")
        regenerate_schedule(store, course, [meeting(Weekday.TUESDAY, 9, 10)], RANGE)
        lec = store.lectures_of(course)[0]
        store.insert(LectureTask(title="read ch. 1", lecture_id=lec.id))

        delete_course(store, course)

        self.assertEqual(store.all(Course), [])
        self.assertEqual(store.all(CourseMeeting), [])
        self.assertEqual(store.all(Lecture), [])
        self.assertEqual(store.all(LectureTask), [])

    def test_update_term_reschedules_following_courses_only(self) -> None:
        store = PlannerStore()
        term = Term(name="Fall", start_date=date(2026, 8, 31), end_date=date(2026, 9, 6))
        store.insert(term)
        follows = Course(name="Follows", term_id=term.id)
        own = Course(name="Own", term_id=term.id)
        regenerate_schedule(store, follows, [meeting(Weekday.TUESDAY, 9, 10)])
        regenerate_schedule(store, own, [meeting(Weekday.TUESDAY, 9, 10)], RANGE)

        results = update_term(store, term, date(2026, 8, 31), date(2026, 9, 20))

        self.assertEqual(len(results), 1)
        self.assertEqual(len(store.lectures_of(follows)), 3)
        self.assertEqual(len(store.lectures_of(own)), 2)


if __name__ == "__main__":
    unittest.main()
