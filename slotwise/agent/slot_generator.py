"""
Slot Generator: candidate time slots inside a search window
- fixed 30-minute grid, ascending start
- working hours, not-before / not-after and preferred weekdays respected
- bounded by an iteration ceiling so it always terminates
"""

from datetime import datetime, timedelta
from typing import Iterator, Optional, Tuple

from ..config import (
    DEFAULT_DURATION_MINUTES,
    MAX_CANDIDATE_ITERATIONS,
    SLOT_STEP_MINUTES,
)
from ..models import Constraints, WorkingHours
from ..utils import (
    at_minutes,
    ensure_aware,
    hhmm_to_minutes,
    minutes_of_day,
    next_day_at,
    resolve_timezone,
)

Candidate = Tuple[datetime, datetime]


class SlotGenerator:
    """
    Finite, restartable sequence of ``(start, end)`` candidates.

    Each ``iter()`` replays the same grid from the window start.
    Times of day are evaluated in the working-hours timezone.
    """

    def __init__(self,
                 window_start: datetime,
                 window_end: datetime,
                 duration_minutes: Optional[int] = None,
                 working_hours: Optional[WorkingHours] = None,
                 constraints: Optional[Constraints] = None,
                 step_minutes: int = SLOT_STEP_MINUTES,
                 max_iterations: int = MAX_CANDIDATE_ITERATIONS):
        tz = resolve_timezone(working_hours.timezone if working_hours else None)
        self.tz = tz
        self.window_start = ensure_aware(window_start, tz).astimezone(tz)
        self.window_end = ensure_aware(window_end, tz).astimezone(tz)
        self.duration = timedelta(minutes=duration_minutes or DEFAULT_DURATION_MINUTES)
        self.step = timedelta(minutes=step_minutes)
        self.max_iterations = max_iterations
        self.working_hours = working_hours
        self.constraints = constraints

        self._day_start = hhmm_to_minutes(working_hours.start) if working_hours else 0
        self._day_end = hhmm_to_minutes(working_hours.end) if working_hours else None
        self._not_before = None
        self._not_after = None
        self._preferred_days = frozenset()
        if constraints is not None:
            if constraints.not_before:
                self._not_before = hhmm_to_minutes(constraints.not_before)
            if constraints.not_after:
                self._not_after = hhmm_to_minutes(constraints.not_after)
            self._preferred_days = frozenset(constraints.preferred_days)

    def __iter__(self) -> Iterator[Candidate]:
        return self._walk()

    def _first_cursor(self) -> datetime:
        cursor = self.window_start
        if self.working_hours is not None:
            cursor = at_minutes(cursor, self._day_start)
        # never emit before the window opens
        while cursor < self.window_start:
            cursor += self.step
        return cursor

    def _walk(self) -> Iterator[Candidate]:
        cursor = self._first_cursor()
        iterations = 0
        while cursor < self.window_end and iterations < self.max_iterations:
            iterations += 1
            minute = minutes_of_day(cursor)

            if self._day_end is not None and minute >= self._day_end:
                cursor = next_day_at(cursor, self._day_start)
                continue

            if self._not_before is not None and minute < self._not_before:
                cursor = at_minutes(cursor, self._not_before)
                continue

            if self._not_after is not None and minute > self._not_after:
                cursor = next_day_at(cursor, self._day_start)
                continue

            if self._preferred_days and cursor.weekday() not in self._preferred_days:
                cursor = next_day_at(cursor, self._day_start)
                continue

            yield cursor, cursor + self.duration
            cursor += self.step


def generate(window_start: datetime,
             window_end: datetime,
             duration_minutes: Optional[int] = None,
             working_hours: Optional[WorkingHours] = None,
             constraints: Optional[Constraints] = None) -> SlotGenerator:
    return SlotGenerator(window_start,
                         window_end,
                         duration_minutes=duration_minutes,
                         working_hours=working_hours,
                         constraints=constraints)
