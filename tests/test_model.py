import unittest
from datetime import date

from studyplanner.model import Course, CourseMeeting, Term, Weekday, effective_range


class TestWeekday(unittest.TestCase):
    def test_from_date_is_sunday_first(self) -> None:
        # 2026-09-06 is a Sunday, 2026-09-12 a Saturday
        self.assertEqual(Weekday.from_date(date(2026, 9, 6)), Weekday.SUNDAY)
        self.assertEqual(int(Weekday.from_date(date(2026, 9, 6))), 1)
        self.assertEqual(Weekday.from_date(date(2026, 9, 7)), Weekday.MONDAY)
        self.assertEqual(int(Weekday.from_date(date(2026, 9, 12))), 7)

    def test_monday_first_ordering(self) -> None:
        order = Weekday.monday_first()
        self.assertEqual(order[0], Weekday.MONDAY)
        self.assertEqual(order[-1], Weekday.SUNDAY)
        self.assertEqual(sorted(order), list(Weekday))

    def test_parse(self) -> None:
        self.assertEqual(Weekday.parse("Tue"), Weekday.TUESDAY)
        self.assertEqual(Weekday.parse("th"), Weekday.THURSDAY)
        self.assertEqual(Weekday.parse("SATURDAY"), Weekday.SATURDAY)
        self.assertEqual(Weekday.parse("1"), Weekday.SUNDAY)
        for bad in ("t", "s", "8", "0", "funday"):
            with self.subTest(bad=bad):
                with self.assertRaises(ValueError):
                    Weekday.parse(bad)

    def test_short_label(self) -> None:
        self.assertEqual(Weekday.WEDNESDAY.short_label, "Wed")


class TestCourseMeeting(unittest.TestCase):
    def test_minutes_and_describe(self) -> None:
        m = CourseMeeting(day_of_week=Weekday.TUESDAY, start_hour=9, start_minute=0, end_hour=9, end_minute=50)
        self.assertEqual(m.start_minutes, 540)
        self.assertEqual(m.duration_minutes, 50)
        self.assertEqual(m.describe(), "Tue 09:00-09:50 Class")


class TestEffectiveRange(unittest.TestCase):
    def setUp(self) -> None:
        self.term = Term(name="Fall", start_date=date(2026, 9, 14), end_date=date(2026, 12, 18))
        self.today = date(2026, 10, 19)

    def test_course_override_wins(self) -> None:
        course = Course(name="X", term_start_date=date(2026, 10, 1), term_end_date=date(2026, 11, 1))
        self.assertEqual(effective_range(course, self.term, self.today), (date(2026, 10, 1), date(2026, 11, 1)))

    def test_term_used_without_override(self) -> None:
        course = Course(name="X")
        self.assertEqual(effective_range(course, self.term, self.today), (date(2026, 9, 14), date(2026, 12, 18)))

    def test_mixed_override_and_term(self) -> None:
        course = Course(name="X", term_end_date=date(2026, 11, 1))
        self.assertEqual(effective_range(course, self.term, self.today), (date(2026, 9, 14), date(2026, 11, 1)))

    def test_defaults_today_plus_three_months(self) -> None:
        course = Course(name="X")
        self.assertEqual(effective_range(course, None, self.today), (self.today, date(2027, 1, 19)))

    def test_month_end_is_clamped(self) -> None:
        course = Course(name="X")
        self.assertEqual(effective_range(course, None, date(2026, 11, 30)), (date(2026, 11, 30), date(2027, 2, 28)))


if __name__ == "__main__":
    unittest.main()
