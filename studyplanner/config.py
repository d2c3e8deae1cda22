"""
Runtime settings.

Everything has a sensible default so the planner works out of the box;
environment variables override:

    STUDYPLANNER_DATA           path of the JSON store
    STUDYPLANNER_TZ             IANA zone for weekday/time computation (e.g. Europe/Zurich)
    STUDYPLANNER_TERM_MONTHS    default term length when a course has no dates
    STUDYPLANNER_MEETING_TYPE   session type for meetings given without one (Class)
    STUDYPLANNER_LOG_LEVEL      logging level name (WARNING)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationError as SettingsValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from studyplanner.errors import ValidationError
from studyplanner.expand import LocalCalendar
from studyplanner.model import DEFAULT_MEETING_TYPE


def _default_data_path() -> Path:
    """
    Return the default path of planner.json inside the package.

    Using a function instead of a constant lets tests point the store
    somewhere else.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data" / "planner.json"


class Settings(BaseSettings):
    # Storage
    data: Path = Field(default_factory=_default_data_path)

    # Calendar
    tz: Optional[str] = None
    term_months: int = Field(default=3, ge=1)
    meeting_type: str = DEFAULT_MEETING_TYPE

    # Logging
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(env_prefix="STUDYPLANNER_", extra="ignore")

    @field_validator("data")
    @classmethod
    def _expand_user(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("tz")
    @classmethod
    def _blank_tz_is_local(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None

    @field_validator("meeting_type")
    @classmethod
    def _meeting_type_not_blank(cls, v: str) -> str:
        return v.strip() or DEFAULT_MEETING_TYPE

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper() or "WARNING"

    def calendar(self) -> LocalCalendar:
        if not self.tz:
            return LocalCalendar()
        try:
            return LocalCalendar(ZoneInfo(self.tz))
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown timezone: {self.tz!r}") from None


def load_settings(**overrides) -> Settings:
    """
    Build Settings from the environment; keyword overrides win.
    Invalid values are reported as the planner's ValidationError.
    """
    try:
        return Settings(**overrides)
    except SettingsValidationError as exc:
        raise ValidationError(f"Invalid STUDYPLANNER_* setting: {exc}") from None
