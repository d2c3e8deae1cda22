"""
Persistent storage for the planner.

All records live in one JSON file (default: studyplanner/data/planner.json):

    {
      "version": 1,
      "terms": [...], "courses": [...], "meetings": [...], "lectures": [...],
      "lecture_notes": [...], "lecture_files": [...], "lecture_tasks": [...],
      "assignments": [...], "syllabi": [...]
    }

PlannerStore keeps the records in memory, resolves relationships by id and
applies the cascade rules of the model:

- deleting a Term deletes its Courses
- deleting a Course deletes its meetings, lectures, assignments and syllabi
- deleting a Lecture deletes its notes, files and tasks
- deleting an Assignment unlinks (does not delete) its lecture tasks

Changes become durable only on save(). transaction() groups several
changes so that a failure restores the previous in-memory state.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import fields
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, Optional, TypeVar

from studyplanner.errors import PersistenceError
from studyplanner.model import (
    Assignment,
    Course,
    CourseMeeting,
    Lecture,
    LectureFile,
    LectureNote,
    LectureTask,
    Syllabus,
    Term,
    Weekday,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# table name -> record class, in file order
TABLES: dict[str, type] = {
    "terms": Term,
    "courses": Course,
    "meetings": CourseMeeting,
    "lectures": Lecture,
    "lecture_notes": LectureNote,
    "lecture_files": LectureFile,
    "lecture_tasks": LectureTask,
    "assignments": Assignment,
    "syllabi": Syllabus,
}
_TABLE_OF: dict[type, str] = {cls: name for name, cls in TABLES.items()}

# fields that need conversion to/from JSON strings
_DATE_FIELDS = {"start_date", "end_date", "term_start_date", "term_end_date"}
_DATETIME_FIELDS = {"date", "created_date", "timestamp", "created_at", "due_date", "last_modified"}

T = TypeVar("T")


def _encode(obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, Weekday):
            value = int(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[f.name] = value
    return out


def _decode(cls: type[T], raw: dict[str, Any]) -> T:
    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            continue
        if value is not None and key in _DATE_FIELDS:
            value = date.fromisoformat(value)
        elif value is not None and key in _DATETIME_FIELDS:
            value = datetime.fromisoformat(value)
        elif key == "day_of_week":
            value = Weekday(int(value))
        kwargs[key] = value
    return cls(**kwargs)


class PlannerStore:
    """
    In-memory object store backed by a JSON file.

    path=None gives a purely in-memory store (save() is a no-op), which is
    what most tests use.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._tables: dict[str, dict[str, Any]] = {name: {} for name in TABLES}
        self._tx_depth = 0

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, path: str | Path) -> "PlannerStore":
        """
        Load a store from disk.

        A missing file is a fresh, empty planner. A file that exists but
        cannot be read or parsed raises PersistenceError instead of being
        treated as empty, because the next save() would overwrite it.
        """
        store = cls(path)
        p = Path(path)
        if not p.exists():
            logger.info("No planner file at %s, starting empty", p)
            return store

        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Could not read planner file %s: %s", p, exc)
            raise PersistenceError(f"Could not read {p}: {exc}") from exc

        if not isinstance(data, dict):
            raise PersistenceError(f"Unexpected content in {p}: expected a JSON object")

        try:
            for name, record_cls in TABLES.items():
                rows = data.get(name, [])
                if not isinstance(rows, list):
                    raise TypeError(f"{name} is not a list")
                for raw in rows:
                    obj = _decode(record_cls, raw)
                    store._tables[name][obj.id] = obj
        except (TypeError, ValueError, KeyError, AttributeError) as exc:
            logger.error("Corrupt planner file %s: %s", p, exc)
            raise PersistenceError(f"Corrupt planner file {p}: {exc}") from exc

        logger.debug("Loaded %s", store.summary())
        return store

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"version": SCHEMA_VERSION}
        for name, table in self._tables.items():
            payload[name] = [_encode(obj) for obj in table.values()]
        return payload

    def save(self) -> None:
        """
        Write the store to disk atomically (temp file + rename).

        Raises PersistenceError on any filesystem failure; the file on disk
        is then left as it was.
        """
        if self.path is None:
            return

        text = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".planner-", suffix=".json", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            logger.error("Saving planner to %s failed: %s", self.path, exc)
            raise PersistenceError(f"Could not save {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug("Saved %s to %s", self.summary(), self.path)

    def commit(self) -> None:
        """
        Save, unless a surrounding transaction is still open.

        Inside nested transactions only the outermost level writes the file,
        so a failure after an inner step leaves the file untouched.
        """
        if self._tx_depth > 1:
            logger.debug("Deferring save to the outer transaction")
            return
        self.save()

    def summary(self) -> str:
        return ", ".join(f"{len(t)} {name}" for name, t in self._tables.items() if t)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["PlannerStore"]:
        """
        Group changes: if the block raises, the in-memory state is restored
        to what it was on entry and the exception propagates.

        Nested transactions join the outermost one.
        """
        if self._tx_depth > 0:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        snapshot = self._snapshot()
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._restore(snapshot)
            logger.warning("Transaction rolled back")
            raise
        finally:
            self._tx_depth = 0

    def _snapshot(self) -> dict[str, dict[str, tuple[Any, dict[str, Any]]]]:
        # Keep object identities: callers may hold references to records
        return {
            name: {oid: (obj, dict(vars(obj))) for oid, obj in table.items()}
            for name, table in self._tables.items()
        }

    def _restore(self, snapshot: dict[str, dict[str, tuple[Any, dict[str, Any]]]]) -> None:
        for name, rows in snapshot.items():
            table: dict[str, Any] = {}
            for oid, (obj, state) in rows.items():
                vars(obj).clear()
                vars(obj).update(state)
                table[oid] = obj
            self._tables[name] = table

    # ------------------------------------------------------------------
    # Generic access
    # ------------------------------------------------------------------

    def _table(self, cls: type) -> dict[str, Any]:
        try:
            return self._tables[_TABLE_OF[cls]]
        except KeyError:
            raise TypeError(f"Not a planner record type: {cls.__name__}") from None

    def insert(self, obj: Any) -> Any:
        self._table(type(obj))[obj.id] = obj
        return obj

    def get(self, cls: type[T], obj_id: str) -> Optional[T]:
        return self._table(cls).get(obj_id)

    def all(self, cls: type[T]) -> list[T]:
        return list(self._table(cls).values())

    def delete(self, obj: Any) -> None:
        """Delete a record and everything it owns."""
        if isinstance(obj, Term):
            for course in self.courses_of_term(obj):
                self.delete(course)
        elif isinstance(obj, Course):
            for meeting in self.meetings_of(obj):
                self._table(CourseMeeting).pop(meeting.id, None)
            self.delete_lectures_of(obj)
            for assignment in self.assignments_of(obj):
                self.delete(assignment)
            for syllabus in self.syllabi_of(obj):
                self._table(Syllabus).pop(syllabus.id, None)
        elif isinstance(obj, Lecture):
            for child_cls in (LectureNote, LectureFile, LectureTask):
                table = self._table(child_cls)
                for child_id in [c.id for c in table.values() if c.lecture_id == obj.id]:
                    del table[child_id]
        elif isinstance(obj, Assignment):
            for task in self._table(LectureTask).values():
                if task.assignment_id == obj.id:
                    task.assignment_id = None

        self._table(type(obj)).pop(obj.id, None)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def term_of(self, course: Course) -> Optional[Term]:
        if course.term_id is None:
            return None
        return self.get(Term, course.term_id)

    def courses_of_term(self, term: Term) -> list[Course]:
        return [c for c in self.all(Course) if c.term_id == term.id]

    def meetings_of(self, course: Course) -> list[CourseMeeting]:
        out = [m for m in self.all(CourseMeeting) if m.course_id == course.id]
        order = Weekday.monday_first()
        # Unknown weekdays sort last
        out.sort(key=lambda m: (order.index(m.day_of_week) if m.day_of_week in order else len(order), m.start_minutes))
        return out

    def lectures_of(self, course: Course) -> list[Lecture]:
        out = [lec for lec in self.all(Lecture) if lec.course_id == course.id]
        out.sort(key=Lecture.wall_clock_key)
        return out

    def assignments_of(self, course: Course) -> list[Assignment]:
        return [a for a in self.all(Assignment) if a.course_id == course.id]

    def syllabi_of(self, course: Course) -> list[Syllabus]:
        return [s for s in self.all(Syllabus) if s.course_id == course.id]

    def notes_of(self, lecture: Lecture) -> list[LectureNote]:
        return [n for n in self.all(LectureNote) if n.lecture_id == lecture.id]

    def files_of(self, lecture: Lecture) -> list[LectureFile]:
        return [f for f in self.all(LectureFile) if f.lecture_id == lecture.id]

    def tasks_of(self, lecture: Lecture) -> list[LectureTask]:
        return [t for t in self.all(LectureTask) if t.lecture_id == lecture.id]

    def has_user_content(self, lecture: Lecture) -> bool:
        return bool(
            (lecture.notes or "").strip()
            or self.notes_of(lecture)
            or self.files_of(lecture)
            or self.tasks_of(lecture)
        )

    def delete_lectures_of(self, course: Course) -> int:
        lectures = self.lectures_of(course)
        for lecture in lectures:
            self.delete(lecture)
        return len(lectures)

    # ------------------------------------------------------------------
    # Lookup by user-facing name
    # ------------------------------------------------------------------

    def find_course(self, key: str) -> Optional[Course]:
        """Find a course by id or (case-insensitive) name."""
        needle = key.strip()
        hit = self.get(Course, needle)
        if hit is not None:
            return hit
        for course in self.all(Course):
            if course.name.strip().lower() == needle.lower():
                return course
        return None

    def find_term(self, key: str) -> Optional[Term]:
        needle = key.strip()
        hit = self.get(Term, needle)
        if hit is not None:
            return hit
        for term in self.all(Term):
            if term.name.strip().lower() == needle.lower():
                return term
        return None
