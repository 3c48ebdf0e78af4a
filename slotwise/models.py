from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_TIMEZONE_NAME,
    HHMM_RE,
    SEARCH_WINDOW_DAYS,
    WORKING_HOURS_END,
    WORKING_HOURS_START,
)
from .utils import ensure_aware

Priority = Literal["low", "medium", "high"]
Frequency = Literal["daily", "weekly", "monthly"]
Severity = Literal["hard", "soft"]


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not HHMM_RE.match(value.strip()):
        raise ValueError(f"expected HH:MM, got {value!r}")
    return value.strip()


def _check_weekdays(values: List[int]) -> List[int]:
    for day in values:
        if day < 0 or day > 6:
            raise ValueError(f"weekday out of range 0-6: {day}")
    return sorted(set(values))


def _minutes(value: str) -> int:
    m = HHMM_RE.match(value)
    return int(m.group(1)) * 60 + int(m.group(2))


def _check_aware(value: Optional[datetime]) -> Optional[datetime]:
    # naive timestamps are read in the default timezone
    if value is None:
        return value
    return ensure_aware(value)


# -------------------------
# Intent
# -------------------------
class Recurrence(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    frequency: Frequency
    interval: int = 1
    days_of_week: List[int] = Field(default_factory=list)  # 0 = Monday
    end_date: Optional[datetime] = None
    count: Optional[int] = None

    @field_validator("end_date")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)

    @field_validator("days_of_week")
    @classmethod
    def _validate_days(cls, value: List[int]) -> List[int]:
        return _check_weekdays(value)


class Constraints(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    not_before: Optional[str] = None  # "HH:MM"
    not_after: Optional[str] = None
    preferred_days: List[int] = Field(default_factory=list)
    avoid_days: List[int] = Field(default_factory=list)
    must_be_before: Optional[datetime] = None
    must_be_after: Optional[datetime] = None

    @field_validator("must_be_before", "must_be_after")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)

    @field_validator("not_before", "not_after")
    @classmethod
    def _validate_times(cls, value: Optional[str]) -> Optional[str]:
        return _check_hhmm(value)

    @field_validator("preferred_days", "avoid_days")
    @classmethod
    def _validate_days(cls, value: List[int]) -> List[int]:
        return _check_weekdays(value)


class ParsedIntent(BaseModel):
    """Structured reading of one free-text scheduling request."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    title: str = ""
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: int = Field(default=DEFAULT_DURATION_MINUTES, gt=0)
    recurrence: Optional[Recurrence] = None
    attendees: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    priority: Priority = "medium"
    constraints: Optional[Constraints] = None
    is_flexible: bool = False
    is_immutable: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    ambiguities: List[str] = Field(default_factory=list)

    @field_validator("start_date", "end_date")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


# -------------------------
# Calendar
# -------------------------
class WorkingHours(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: str = WORKING_HOURS_START
    end: str = WORKING_HOURS_END
    timezone: str = DEFAULT_TIMEZONE_NAME

    @field_validator("start", "end")
    @classmethod
    def _validate_times(cls, value: str) -> str:
        return _check_hhmm(value)

    @model_validator(mode="after")
    def _validate_order(self) -> "WorkingHours":
        if _minutes(self.end) <= _minutes(self.start):
            raise ValueError(f"working hours must end after they start, got {self.start}-{self.end}")
        return self


class CalendarEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    start_date: datetime
    end_date: datetime
    priority: Priority = "medium"
    is_flexible: bool = False
    is_immutable: bool = False
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


class EventCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    start_date: datetime
    end_date: datetime
    description: str = ""
    location: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    priority: Priority = "medium"
    is_flexible: bool = False
    is_immutable: bool = False
    is_all_day: bool = False
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


class SchedulingContext(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    workspace_id: Optional[str] = None
    parsed_intent: ParsedIntent
    search_window_start: datetime
    search_window_end: datetime
    working_hours: Optional[WorkingHours] = None
    existing_events: List[CalendarEvent] = Field(default_factory=list)
    attendee_events: Dict[str, List[CalendarEvent]] = Field(default_factory=dict)

    @field_validator("search_window_start", "search_window_end")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


# -------------------------
# Suggestions
# -------------------------
class ConflictInfo(BaseModel):
    event_id: str
    event_title: str
    event_start: datetime
    event_end: datetime
    severity: Severity
    can_move: bool
    priority: Priority = "medium"

    @field_validator("event_start", "event_end")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


class EventMove(BaseModel):
    event_id: str
    event_title: str
    current_start: datetime
    current_end: datetime
    proposed_start: datetime
    proposed_end: datetime
    reason: str

    @field_validator("current_start", "current_end", "proposed_start", "proposed_end")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


class ScoreBreakdown(BaseModel):
    availability: int = 0
    preference_match: int = 0
    attendee_availability: int = 0
    minimal_disruption: int = 0


class SuggestedSlot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    start_time: datetime
    end_time: datetime
    score: int = Field(ge=0, le=100)
    score_breakdown: ScoreBreakdown
    conflicts: List[ConflictInfo] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    reason: str = ""
    required_moves: List[EventMove] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(value)


class ScheduleResult(BaseModel):
    success: bool
    event_id: Optional[str] = None
    moved_events: List[EventMove] = Field(default_factory=list)
    message: str = ""


class AIResponse(BaseModel):
    success: bool
    parsed_intent: Optional[ParsedIntent] = None
    suggestions: Optional[List[SuggestedSlot]] = None
    clarification_needed: bool = False
    clarification_question: Optional[str] = None
    error: Optional[str] = None


# -------------------------
# HTTP payloads
# -------------------------
class ParseRequest(BaseModel):
    prompt: str = ""
    timezone: Optional[str] = None
    reference_time: Optional[datetime] = None


class SuggestRequest(BaseModel):
    parsed_intent: Optional[ParsedIntent] = None
    workspace_id: Optional[str] = None
    search_window_days: int = Field(default=SEARCH_WINDOW_DAYS, ge=1, le=31)
    working_hours: Optional[WorkingHours] = None


class ScheduleRequest(BaseModel):
    selected_slot: Optional[SuggestedSlot] = None
    parsed_intent: Optional[ParsedIntent] = None
    workspace_id: Optional[str] = None
    auto_resolve_conflicts: bool = False
    notify_attendees: bool = False


class ClarifyRequest(BaseModel):
    prompt: str = ""
    ambiguities: List[str] = Field(default_factory=list)
