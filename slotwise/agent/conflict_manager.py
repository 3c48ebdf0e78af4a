"""
Conflict Manager: overlap detection and relocation proposals
- hard/soft classification of conflicting events
- move proposals for movable conflicts that do not collide with anything else
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence

from ..config import MOVE_BUFFER_MINUTES
from ..models import CalendarEvent, ConflictInfo, EventMove
from ..utils import _log_debug, overlaps

MOVE_REASON = "To accommodate new event"


class ItemStrength(str, Enum):
    """How firmly an existing event holds its place."""
    HARD = "hard"  # immutable, never proposed for a move
    SOFT = "soft"


def strength_of(event: CalendarEvent) -> ItemStrength:
    return ItemStrength.HARD if event.is_immutable else ItemStrength.SOFT


def can_move(event: CalendarEvent) -> bool:
    if event.is_immutable:
        return False
    return event.priority == "low" or event.is_flexible


def detect_conflicts(slot_start: datetime,
                     slot_end: datetime,
                     existing_events: Sequence[CalendarEvent]) -> List[ConflictInfo]:
    """
    Every existing event overlapping ``[slot_start, slot_end)``.

    Touching endpoints are not a conflict.
    """
    conflicts: List[ConflictInfo] = []
    for ev in existing_events:
        if not overlaps(slot_start, slot_end, ev.start_date, ev.end_date):
            continue
        conflicts.append(ConflictInfo(
            event_id=ev.id,
            event_title=ev.title,
            event_start=ev.start_date,
            event_end=ev.end_date,
            severity=strength_of(ev).value,
            can_move=can_move(ev),
            priority=ev.priority or "medium",
        ))
    return conflicts


def _collides(start: datetime,
              end: datetime,
              events: Sequence[CalendarEvent],
              moving_id: str,
              accepted: Sequence[EventMove]) -> bool:
    for ev in events:
        if ev.id == moving_id:
            continue
        if overlaps(start, end, ev.start_date, ev.end_date):
            return True
    for move in accepted:
        if overlaps(start, end, move.proposed_start, move.proposed_end):
            return True
    return False


def propose_moves(conflicts: Sequence[ConflictInfo],
                  slot_start: datetime,
                  slot_end: datetime,
                  all_events: Sequence[CalendarEvent],
                  buffer_minutes: Optional[int] = None) -> List[EventMove]:
    """
    Relocate each movable conflict to just after the new slot.

    A proposal keeps the event's duration and starts ``buffer_minutes`` after
    ``slot_end``. It is dropped when it would overlap any other existing event
    or a move already accepted for this slot.
    """
    buffer = timedelta(minutes=MOVE_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes)
    moves: List[EventMove] = []
    for conflict in conflicts:
        if not conflict.can_move:
            continue
        duration = conflict.event_end - conflict.event_start
        proposed_start = slot_end + buffer
        proposed_end = proposed_start + duration
        if _collides(proposed_start, proposed_end, all_events, conflict.event_id, moves):
            _log_debug(f"[CONFLICT] no free spot after slot for {conflict.event_id}")
            continue
        moves.append(EventMove(
            event_id=conflict.event_id,
            event_title=conflict.event_title,
            current_start=conflict.event_start,
            current_end=conflict.event_end,
            proposed_start=proposed_start,
            proposed_end=proposed_end,
            reason=MOVE_REASON,
        ))
    return moves
