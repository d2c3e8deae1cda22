"""
studyplanner: personal academic planner.

The public entry points are expand() (weekly meetings -> dated lectures)
and regenerate_schedule() (store a course's new pattern and lectures).
"""

from studyplanner.expand import LocalCalendar, expand
from studyplanner.schedule import regenerate_schedule

__all__ = ["LocalCalendar", "expand", "regenerate_schedule"]
