from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

from ..config import (
    MAX_SUGGESTIONS,
    MIN_EVENT_BUFFER_MINUTES,
    MIN_SUGGESTION_SCORE,
    SEARCH_WINDOW_DAYS,
)
from ..errors import PartialCommitError, ValidationError
from ..models import (
    EventCreate,
    EventMove,
    ParsedIntent,
    ScheduleResult,
    SchedulingContext,
    SuggestedSlot,
    WorkingHours,
)
from ..state import AttendeeDirectory, EventStore
from ..utils import _log_debug, ensure_aware, now, resolve_timezone
from .scoring import score_slot
from .slot_generator import generate

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TITLE = "New Event"


# -------------------------
# Suggest
# -------------------------
def find_available_slots(context: SchedulingContext,
                         *,
                         min_score: int = MIN_SUGGESTION_SCORE,
                         limit: int = MAX_SUGGESTIONS,
                         buffer_minutes: int = MIN_EVENT_BUFFER_MINUTES,
                         max_workers: Optional[int] = None) -> List[SuggestedSlot]:
  """
  Ranked suggestions for the context's intent.

  Every grid candidate is scored, anything under ``min_score`` is dropped,
  and the rest is ordered by score (ties: earlier start first) and cut to
  ``limit``. With ``max_workers`` > 1 scoring runs on a thread pool; the
  final order does not depend on completion order.
  """
  intent = context.parsed_intent
  candidates = list(generate(context.search_window_start,
                             context.search_window_end,
                             duration_minutes=intent.duration,
                             working_hours=context.working_hours,
                             constraints=intent.constraints))

  def _score(candidate: Tuple) -> SuggestedSlot:
    return score_slot(candidate[0], candidate[1], context, buffer_minutes)

  if max_workers and max_workers > 1 and len(candidates) > 1:
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
      scored = list(pool.map(_score, candidates))
  else:
    scored = [_score(c) for c in candidates]

  viable = [slot for slot in scored if slot.score >= min_score]
  viable.sort(key=lambda slot: (-slot.score, slot.start_time))
  _log_debug(f"[SCHEDULER] candidates={len(candidates)} viable={len(viable)} returned={min(len(viable), limit)}")
  return viable[:limit]


def build_scheduling_context(*,
                             user_id: str,
                             intent: ParsedIntent,
                             store: EventStore,
                             attendee_directory: Optional[AttendeeDirectory] = None,
                             workspace_id: Optional[str] = None,
                             search_window_days: int = SEARCH_WINDOW_DAYS,
                             working_hours: Optional[WorkingHours] = None) -> SchedulingContext:
  """
  Assemble the search window and calendar data for one suggest call.

  The window opens at the intent's start (or now) and spans
  ``search_window_days``, narrowed by must-be-after / must-be-before.
  """
  working_hours = working_hours or WorkingHours()
  tz = resolve_timezone(working_hours.timezone)
  window_start = ensure_aware(intent.start_date, tz) if intent.start_date else now(tz)
  window_end = window_start + timedelta(days=search_window_days)

  constraints = intent.constraints
  if constraints is not None:
    if constraints.must_be_after is not None:
      window_start = max(window_start, ensure_aware(constraints.must_be_after, tz))
    if constraints.must_be_before is not None:
      window_end = min(window_end, ensure_aware(constraints.must_be_before, tz))
  if window_end <= window_start:
    raise ValidationError("Search window is empty: must_be_before is not after the window start")

  try:
    existing = store.list_events(user_id, window_start, window_end, workspace_id)
  except (OSError, RuntimeError):
    logger.exception("Failed to load existing events for user %s", user_id)
    existing = []

  attendee_events = {}
  if attendee_directory is not None and intent.attendees:
    attendee_events = attendee_directory.events_for(intent.attendees, window_start, window_end, workspace_id)

  return SchedulingContext(
      user_id=user_id,
      workspace_id=workspace_id,
      parsed_intent=intent,
      search_window_start=window_start,
      search_window_end=window_end,
      working_hours=working_hours,
      existing_events=existing,
      attendee_events=attendee_events,
  )


# -------------------------
# Commit
# -------------------------
def _revert_moves(store: EventStore, applied: Sequence[EventMove]) -> Tuple[List[str], List[str]]:
  reverted: List[str] = []
  unreverted: List[str] = []
  for move in reversed(applied):
    try:
      store.update_event_times(move.event_id, move.current_start, move.current_end)
    except Exception:
      logger.exception("Could not revert move of event %s", move.event_id)
      unreverted.append(move.event_id)
      continue
    logger.info("Reverted move of event %s", move.event_id)
    reverted.append(move.event_id)
  return reverted, unreverted


def _fail_after_moves(store: EventStore, applied: Sequence[EventMove], stage: str, exc: Exception) -> None:
  reverted, unreverted = _revert_moves(store, applied)
  raise PartialCommitError(
      f"Scheduling failed during {stage}: {exc}",
      stage=stage,
      applied=[m.event_id for m in applied],
      reverted=reverted,
      unreverted=unreverted,
  ) from exc


def commit_slot(slot: SuggestedSlot,
                intent: ParsedIntent,
                *,
                store: EventStore,
                user_id: str,
                workspace_id: Optional[str] = None,
                auto_resolve_conflicts: bool = False) -> ScheduleResult:
  """
  Persist the chosen slot, moving conflicting events first when allowed.

  Moves and creation are separate writes. If a later write fails, moves
  already applied are put back and PartialCommitError reports what state
  the calendar was left in.
  """
  planned = list(slot.required_moves) if auto_resolve_conflicts else []
  applied: List[EventMove] = []
  logger.info("Committing slot %s for user %s with %d planned moves",
              slot.start_time.isoformat(), user_id, len(planned))

  for move in planned:
    try:
      store.update_event_times(move.event_id, move.proposed_start, move.proposed_end)
    except Exception as exc:
      logger.exception("Moving event %s failed", move.event_id)
      if not applied:
        raise
      _fail_after_moves(store, applied, "move", exc)
    applied.append(move)

  event = EventCreate(
      title=intent.title or DEFAULT_EVENT_TITLE,
      description=intent.description or "",
      start_date=slot.start_time,
      end_date=slot.end_time,
      location=intent.location,
      attendees=list(intent.attendees),
      priority=intent.priority or "medium",
      is_flexible=intent.is_flexible,
      is_immutable=intent.is_immutable,
      user_id=user_id,
      workspace_id=workspace_id,
  )
  try:
    event_id = store.create_event(event)
  except Exception as exc:
    logger.exception("Creating event %r failed", event.title)
    if not applied:
      raise
    _fail_after_moves(store, applied, "create", exc)

  message = "Event scheduled successfully"
  if applied:
    message = f"Event scheduled and {len(applied)} event(s) moved"
  return ScheduleResult(success=True, event_id=event_id, moved_events=applied, message=message)
