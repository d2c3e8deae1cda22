"""
CLI (Command Line Interface).

Terminal commands for managing terms, courses and their weekly schedules:

    studyplanner term add "Fall 2026" 2026-09-14 2026-12-18
    studyplanner course add "Linear Algebra" --term "Fall 2026" --meeting "Tue,Thu 09:00-09:50 Class"
    studyplanner schedule "Linear Algebra" --meeting "Tue 09:00-09:50 Class" --meeting "Wed 14:00-15:00 Discussion"
    studyplanner lectures "Linear Algebra"
    studyplanner agenda --from 2026-09-14 --to 2026-09-20
    studyplanner conflicts [--lectures]

Every command that changes data saves the planner file before returning.
Errors are printed as "Error: ..." with exit code 1.
"""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, TypeVar

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from studyplanner.config import Settings, load_settings
from studyplanner.conflicts import find_conflicts, find_lecture_conflicts
from studyplanner.errors import PlannerError, ValidationError
from studyplanner.expand import count_weekdays
from studyplanner.model import (
    MEETING_TYPES,
    TERM_TYPES,
    Assignment,
    Course,
    Lecture,
    LectureNote,
    LectureTask,
    Syllabus,
    Term,
    effective_range,
)
from studyplanner.parse import parse_date, parse_datetime, parse_meeting_specs
from studyplanner.schedule import (
    clear_schedule,
    create_course,
    delete_course,
    regenerate_schedule,
    update_term,
    update_term_window,
)
from studyplanner.storage import PlannerStore
from studyplanner.validation import validate_meetings, validate_priority, validate_range, validate_term

logger = logging.getLogger(__name__)

console = Console()

T = TypeVar("T")


def _short(obj_id: str) -> str:
    return obj_id[:8]


def _fmt_dt(value: Optional[datetime]) -> str:
    return value.strftime("%a %Y-%m-%d %H:%M") if value else "-"


def _find_by_prefix(store: PlannerStore, cls: type[T], prefix: str, what: str) -> T:
    """
    Resolve a record from a full id or the short id printed by listings.
    """
    key = prefix.strip().lower()
    if not key:
        raise ValidationError(f"Please provide a {what} id.")
    hits = [obj for obj in store.all(cls) if obj.id.lower().startswith(key)]
    if not hits:
        raise ValidationError(f"No {what} with id {prefix!r}")
    if len(hits) > 1:
        raise ValidationError(f"Ambiguous {what} id {prefix!r} ({len(hits)} matches)")
    return hits[0]


def _require_course(store: PlannerStore, name: str) -> Course:
    course = store.find_course(name)
    if course is None:
        raise ValidationError(f"Unknown course: {name!r}")
    return course


def _date_range_arg(args: argparse.Namespace) -> Optional[tuple[date, date]]:
    start = getattr(args, "start", None)
    end = getattr(args, "end", None)
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise ValidationError("--start and --end must be given together")
    s, e = parse_date(start), parse_date(end)
    validate_range(s, e)
    return s, e


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------


def _cmd_term_add(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    term = Term(name=args.name.strip(), start_date=parse_date(args.start), end_date=parse_date(args.end))
    validate_term(term)
    if store.find_term(term.name) is not None:
        print(f"Term already exists: {term.name}")
        return 1
    with store.transaction():
        store.insert(term)
        store.commit()
    print(f"Added term: {term.name} ({term.start_date} to {term.end_date})")
    return 0


def _cmd_term_list(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    terms = sorted(store.all(Term), key=lambda t: t.start_date)
    if not terms:
        print("No terms.")
        return 0
    for t in terms:
        print(f"{t.name} | {t.start_date} to {t.end_date} | {len(store.courses_of_term(t))} course(s)")
    return 0


def _cmd_term_dates(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    term = store.find_term(args.name)
    if term is None:
        raise ValidationError(f"Unknown term: {args.name!r}")
    results = update_term(
        store,
        term,
        parse_date(args.start),
        parse_date(args.end),
        calendar=settings.calendar(),
        term_months=settings.term_months,
    )
    print(f"Updated term: {term.name} ({term.start_date} to {term.end_date}), rescheduled {len(results)} course(s)")
    return 0


def _cmd_term_remove(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    term = store.find_term(args.name)
    if term is None:
        print(f"Unknown term: {args.name}")
        return 1
    n = len(store.courses_of_term(term))
    with store.transaction():
        store.delete(term)
        store.commit()
    print(f"Removed term: {term.name} (and {n} course(s))")
    return 0


# ---------------------------------------------------------------------------
# Courses and schedules
# ---------------------------------------------------------------------------


def _cmd_course_add(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    term: Optional[Term] = None
    if args.term:
        term = store.find_term(args.term)
        if term is None:
            raise ValidationError(f"Unknown term: {args.term!r}")

    date_range = _date_range_arg(args)
    course = Course(
        name=args.name.strip(),
        detail=args.detail,
        color=args.color,
        term_type=args.term_type,
        units=args.units,
        term_id=term.id if term else None,
    )
    meetings = parse_meeting_specs(args.meeting or [], default_type=settings.meeting_type)

    result = create_course(
        store,
        course,
        meetings,
        date_range=date_range,
        calendar=settings.calendar(),
        term_months=settings.term_months,
    )
    print(f"Added course: {course.name} ({len(meetings)} meeting(s), {result.created} lecture(s))")
    return 0


def _cmd_course_list(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    courses = sorted(store.all(Course), key=lambda c: c.name.lower())
    if not courses:
        print("No courses.")
        return 0

    table = Table(title="Courses", box=box.SIMPLE)
    table.add_column("Course")
    table.add_column("Term")
    table.add_column("Dates")
    table.add_column("Meetings")
    table.add_column("Lectures", justify="right")
    for c in courses:
        term = store.term_of(c)
        start, end = effective_range(c, term, default_months=settings.term_months)
        meetings = "; ".join(m.describe() for m in store.meetings_of(c)) or "(asynchronous)"
        table.add_row(
            escape(c.name),
            escape(term.name) if term else "-",
            f"{start} to {end}",
            meetings,
            str(len(store.lectures_of(c))),
        )
    console.print(table)
    return 0


def _cmd_course_remove(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    course = store.find_course(args.name)
    if course is None:
        print(f"Unknown course: {args.name}")
        return 1
    delete_course(store, course)
    print(f"Removed course: {course.name}")
    return 0


def _print_preview(course: Course, meetings: list, start: date, end: date) -> None:
    print(f"Schedule preview for {course.name} ({start} to {end}):")
    if not meetings:
        print("No meetings scheduled.")
        return
    total = 0
    for m in meetings:
        n = count_weekdays(m.day_of_week, start, end)
        total += n
        print(f"- {m.describe()}: {n} session(s)")
    print(f"Total: {total} lecture(s)")


def _cmd_schedule(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    course = _require_course(store, args.name)
    date_range = _date_range_arg(args)
    calendar = settings.calendar()

    if args.clear:
        if args.meeting:
            raise ValidationError("--clear cannot be combined with --meeting")
        result = clear_schedule(store, course, date_range)
        print(f"Cleared schedule of {course.name} ({result.deleted} lecture(s) removed)")
        return 0

    if args.meeting:
        meetings = parse_meeting_specs(args.meeting, default_type=settings.meeting_type)
        validate_meetings(meetings)
    else:
        meetings = store.meetings_of(course)

    if args.preview:
        window = Course(name=course.name, term_start_date=course.term_start_date, term_end_date=course.term_end_date)
        if date_range is not None:
            window.term_start_date, window.term_end_date = date_range
        start, end = effective_range(window, store.term_of(course), default_months=settings.term_months)
        _print_preview(course, meetings, start, end)
        return 0

    if not args.meeting and date_range is not None:
        result = update_term_window(
            store,
            course,
            date_range[0],
            date_range[1],
            calendar=calendar,
            term_months=settings.term_months,
            preserve_content=args.keep_content,
        )
    elif args.meeting:
        result = regenerate_schedule(
            store,
            course,
            meetings,
            date_range,
            calendar=calendar,
            term_months=settings.term_months,
            preserve_content=args.keep_content,
        )
    else:
        print("Nothing to do: give --meeting, --start/--end or --clear.")
        return 1

    print(
        f"Updated schedule of {course.name}: "
        f"{result.created} created, {result.deleted} removed, {result.kept} kept "
        f"({len(result.lectures)} lecture(s) total)"
    )
    return 0


# ---------------------------------------------------------------------------
# Lectures and agenda
# ---------------------------------------------------------------------------


def _lecture_table(title: str, rows: list[tuple[Course, Lecture]], store: PlannerStore) -> Table:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("ID")
    table.add_column("When")
    table.add_column("Course")
    table.add_column("Title")
    table.add_column("Notes", justify="right")
    for course, lec in rows:
        extras = len(store.notes_of(lec)) + len(store.files_of(lec)) + len(store.tasks_of(lec))
        table.add_row(
            _short(lec.id),
            _fmt_dt(lec.date),
            escape(course.name),
            escape(lec.title),
            str(extras) if extras else "",
        )
    return table


def _cmd_lectures(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    course = _require_course(store, args.name)
    lectures = store.lectures_of(course)
    if not lectures:
        print(f"No lectures for {course.name}.")
        return 0
    console.print(_lecture_table(escape(course.name), [(course, lec) for lec in lectures], store))
    return 0


def _cmd_agenda(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    first = parse_date(args.from_date) if args.from_date else date.today()
    last = parse_date(args.to_date) if args.to_date else first + timedelta(days=6)
    validate_range(first, last)

    rows: list[tuple[Course, Lecture]] = []
    for course in store.all(Course):
        for lec in store.lectures_of(course):
            if first <= lec.date.date() <= last:
                rows.append((course, lec))
    rows.sort(key=lambda r: (r[1].date.date(), r[1].date.time()))

    due = [
        a
        for a in store.all(Assignment)
        if a.due_date is not None and not a.is_completed and first <= a.due_date.date() <= last
    ]

    if not rows and not due:
        print(f"Nothing scheduled between {first} and {last}.")
        return 0

    if rows:
        console.print(_lecture_table(f"Agenda {first} to {last}", rows, store))
    for a in sorted(due, key=lambda a: a.due_date):
        course = store.get(Course, a.course_id) if a.course_id else None
        print(f"DUE {_fmt_dt(a.due_date)} {course.name if course else ''} {a.title} [{a.priority}]")
    return 0


def _cmd_conflicts(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    """
    Print all overlapping weekly meetings between courses, or with
    --lectures the overlapping dated lectures.
    """
    courses = {c.id: c for c in store.all(Course)}
    meetings = [m for c in courses.values() for m in store.meetings_of(c)]

    if args.lectures:
        clashes = find_lecture_conflicts(store.all(Lecture), meetings)
        if not clashes:
            print("No conflicts found.")
            return 0
        print(f"Conflicts found: {len(clashes)}")
        for a, b in clashes:
            an = courses[a.course_id].name if a.course_id in courses else "?"
            bn = courses[b.course_id].name if b.course_id in courses else "?"
            print(f"- {_fmt_dt(a.date)} {an} {a.title}  <->  {_fmt_dt(b.date)} {bn} {b.title}")
        return 0

    ranges = {
        cid: effective_range(c, store.term_of(c), default_months=settings.term_months) for cid, c in courses.items()
    }

    confs = find_conflicts(meetings, ranges)
    if not confs:
        print("No conflicts found.")
        return 0

    print(f"Conflicts found: {len(confs)}")
    for a, b in confs:
        an = courses[a.course_id].name if a.course_id in courses else "?"
        bn = courses[b.course_id].name if b.course_id in courses else "?"
        print(f"- {an} {a.describe()}  <->  {bn} {b.describe()}")
    return 0


# ---------------------------------------------------------------------------
# Assignments, notes, tasks, syllabi
# ---------------------------------------------------------------------------


def _cmd_assignment_add(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    course = _require_course(store, args.course)
    title = args.title.strip()
    if not title:
        raise ValidationError("Assignment title must not be empty")
    assignment = Assignment(
        title=title,
        course_id=course.id,
        description=args.description,
        due_date=parse_datetime(args.due) if args.due else None,
        priority=validate_priority(args.priority),
    )
    with store.transaction():
        store.insert(assignment)
        store.commit()
    print(f"Added assignment {_short(assignment.id)}: {assignment.title} ({course.name})")
    return 0


def _cmd_assignment_list(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    items = store.all(Assignment)
    if args.course:
        course = _require_course(store, args.course)
        items = [a for a in items if a.course_id == course.id]
    if not items:
        print("No assignments.")
        return 0
    items.sort(key=lambda a: (a.is_completed, a.due_date or datetime.max))
    for a in items:
        course = store.get(Course, a.course_id) if a.course_id else None
        mark = "x" if a.is_completed else " "
        print(f"[{mark}] {_short(a.id)} {_fmt_dt(a.due_date)} {course.name if course else '-'} | {a.title} [{a.priority}]")
    return 0


def _cmd_assignment_done(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    assignment = _find_by_prefix(store, Assignment, args.id, "assignment")
    with store.transaction():
        assignment.is_completed = True
        store.commit()
    print(f"Completed: {assignment.title}")
    return 0


def _cmd_note_add(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    lecture = _find_by_prefix(store, Lecture, args.lecture, "lecture")
    text = args.text.strip()
    if not text:
        raise ValidationError("Note must not be empty")
    with store.transaction():
        store.insert(LectureNote(content=text, lecture_id=lecture.id))
        store.commit()
    print(f"Added note to {lecture.title} on {_fmt_dt(lecture.date)}")
    return 0


def _cmd_task_add(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    lecture = _find_by_prefix(store, Lecture, args.lecture, "lecture")
    assignment = _find_by_prefix(store, Assignment, args.assignment, "assignment") if args.assignment else None
    title = args.title.strip()
    if not title:
        raise ValidationError("Task title must not be empty")
    task = LectureTask(
        title=title,
        lecture_id=lecture.id,
        details=args.details,
        due_date=parse_datetime(args.due) if args.due else None,
        assignment_id=assignment.id if assignment else None,
    )
    with store.transaction():
        store.insert(task)
        store.commit()
    print(f"Added task {_short(task.id)} to {lecture.title} on {_fmt_dt(lecture.date)}")
    return 0


def _cmd_syllabus_add(args: argparse.Namespace, store: PlannerStore, settings: Settings) -> int:
    course = _require_course(store, args.course)
    if args.file:
        content = Path(args.file).read_text(encoding="utf-8")
    else:
        content = args.content or ""
    if not content.strip():
        raise ValidationError("Syllabus content must not be empty")
    with store.transaction():
        store.insert(Syllabus(title=args.title.strip() or "Syllabus", content=content, course_id=course.id))
        store.commit()
    print(f"Added syllabus to {course.name}")
    return 0


# ---------------------------------------------------------------------------
# Parser / entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="studyplanner", description="Study planner CLI")
    parser.add_argument("--data", type=str, default=None, help="Planner file (default: $STUDYPLANNER_DATA)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    meeting_help = f"Weekly meeting, e.g. 'Tue,Thu 09:00-09:50 Class' (types: {', '.join(MEETING_TYPES)})"

    # term
    p_term = sub.add_parser("term", help="Manage terms")
    term_sub = p_term.add_subparsers(dest="action", required=True)
    p = term_sub.add_parser("add", help="Add a term")
    p.add_argument("name")
    p.add_argument("start", help="YYYY-MM-DD")
    p.add_argument("end", help="YYYY-MM-DD")
    p.set_defaults(handler=_cmd_term_add)
    p = term_sub.add_parser("list", help="List terms")
    p.set_defaults(handler=_cmd_term_list)
    p = term_sub.add_parser("dates", help="Change a term's dates and reschedule its courses")
    p.add_argument("name")
    p.add_argument("start")
    p.add_argument("end")
    p.set_defaults(handler=_cmd_term_dates)
    p = term_sub.add_parser("remove", help="Remove a term and its courses")
    p.add_argument("name")
    p.set_defaults(handler=_cmd_term_remove)

    # course
    p_course = sub.add_parser("course", help="Manage courses")
    course_sub = p_course.add_subparsers(dest="action", required=True)
    p = course_sub.add_parser("add", help="Add a course with its weekly meetings")
    p.add_argument("name")
    p.add_argument("--detail", default=None)
    p.add_argument("--term", default=None, help="Term name")
    p.add_argument("--start", default=None, help="Own start date (overrides the term)")
    p.add_argument("--end", default=None, help="Own end date (overrides the term)")
    p.add_argument("--meeting", action="append", help=meeting_help)
    p.add_argument("--color", default="#4ECDC4")
    p.add_argument("--units", type=int, default=None)
    p.add_argument("--term-type", choices=TERM_TYPES, default=None)
    p.set_defaults(handler=_cmd_course_add)
    p = course_sub.add_parser("list", help="List courses")
    p.set_defaults(handler=_cmd_course_list)
    p = course_sub.add_parser("remove", help="Remove a course and everything it owns")
    p.add_argument("name")
    p.set_defaults(handler=_cmd_course_remove)

    # schedule
    p = sub.add_parser("schedule", help="Edit a course's weekly meetings / dates and regenerate lectures")
    p.add_argument("name")
    p.add_argument("--meeting", action="append", help=meeting_help)
    p.add_argument("--start", default=None)
    p.add_argument("--end", default=None)
    p.add_argument("--clear", action="store_true", help="Remove all meetings and lectures")
    p.add_argument(
        "--keep-content",
        action="store_true",
        help="Keep lectures (and their notes/files/tasks) that still occur in the new schedule",
    )
    p.add_argument("--preview", action="store_true", help="Show what would be generated without saving")
    p.set_defaults(handler=_cmd_schedule)

    p = sub.add_parser("lectures", help="List a course's lectures")
    p.add_argument("name")
    p.set_defaults(handler=_cmd_lectures)

    p = sub.add_parser("agenda", help="Lectures and due assignments in a date window")
    p.add_argument("--from", dest="from_date", default=None)
    p.add_argument("--to", dest="to_date", default=None)
    p.set_defaults(handler=_cmd_agenda)

    p = sub.add_parser("conflicts", help="Show overlapping meetings between courses")
    p.add_argument("--lectures", action="store_true", help="Check the dated lectures instead of the weekly pattern")
    p.set_defaults(handler=_cmd_conflicts)

    # assignment
    p_asg = sub.add_parser("assignment", help="Manage assignments")
    asg_sub = p_asg.add_subparsers(dest="action", required=True)
    p = asg_sub.add_parser("add")
    p.add_argument("course")
    p.add_argument("title")
    p.add_argument("--due", default=None, help="YYYY-MM-DD [HH:MM]")
    p.add_argument("--priority", default="Medium")
    p.add_argument("--description", default=None)
    p.set_defaults(handler=_cmd_assignment_add)
    p = asg_sub.add_parser("list")
    p.add_argument("--course", default=None)
    p.set_defaults(handler=_cmd_assignment_list)
    p = asg_sub.add_parser("done")
    p.add_argument("id")
    p.set_defaults(handler=_cmd_assignment_done)

    p_note = sub.add_parser("note", help="Attach notes to lectures")
    note_sub = p_note.add_subparsers(dest="action", required=True)
    p = note_sub.add_parser("add")
    p.add_argument("lecture", help="Lecture id (as shown by 'lectures')")
    p.add_argument("text")
    p.set_defaults(handler=_cmd_note_add)

    p_task = sub.add_parser("task", help="Attach tasks to lectures")
    task_sub = p_task.add_subparsers(dest="action", required=True)
    p = task_sub.add_parser("add")
    p.add_argument("lecture")
    p.add_argument("title")
    p.add_argument("--details", default=None)
    p.add_argument("--due", default=None)
    p.add_argument("--assignment", default=None, help="Link to an assignment id")
    p.set_defaults(handler=_cmd_task_add)

    p_syl = sub.add_parser("syllabus", help="Store a course syllabus")
    syl_sub = p_syl.add_subparsers(dest="action", required=True)
    p = syl_sub.add_parser("add")
    p.add_argument("course")
    p.add_argument("title")
    p.add_argument("--content", default=None)
    p.add_argument("--file", default=None, help="Read the syllabus text from a file")
    p.set_defaults(handler=_cmd_syllabus_add)

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, opens the planner file, dispatches to the
    command handler and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        if args.data:
            settings.data = Path(args.data).expanduser()
        logging.basicConfig(
            level=logging.INFO if args.verbose else getattr(logging, settings.log_level, logging.WARNING),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        store = PlannerStore.open(settings.data)
        code = args.handler(args, store, settings)
    except PlannerError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}")
        raise SystemExit(1)
    except OSError as exc:
        print(f"Error: {exc}")
        raise SystemExit(1)

    raise SystemExit(code)
