"""
Error types shared by the planner.

- ValidationError: editor-side input problems (rejected before the engine runs)
- PersistenceError: the JSON store could not be read or written
- ScheduleError: a regeneration request that cannot be carried out
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for every error the planner raises on purpose."""


class ValidationError(PlannerError, ValueError):
    pass


class PersistenceError(PlannerError):
    pass


class ScheduleError(PlannerError):
    pass
