"""
Slot scoring: weighted multi-criteria evaluation of one candidate slot.

Criteria (each 0-100):
    availability           overlap with the user's own events
    preference_match       working hours, preferred/avoided weekdays, time of day
    attendee_availability  share of attendees free for the whole slot
    minimal_disruption     how few existing events would need to move
    buffer                 breathing room to neighbouring events (not reported)
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence
import uuid

from ..config import (
    MIN_EVENT_BUFFER_MINUTES,
    PRIORITY_OVERLAP_WEIGHTS,
    SCORE_WEIGHTS,
)
from ..models import (
    CalendarEvent,
    ConflictInfo,
    Constraints,
    EventMove,
    ScoreBreakdown,
    SchedulingContext,
    SuggestedSlot,
    WorkingHours,
)
from ..utils import clamp, hhmm_to_minutes, minutes_of_day, overlaps, resolve_timezone, round_half_up
from .conflict_manager import detect_conflicts, propose_moves

FULL_OVERLAP_WEIGHT = 2.0
PARTIAL_OVERLAP_WEIGHT = 1.0
POINTS_PER_OVERLAP_UNIT = 10.0


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def availability_score(slot_start: datetime,
                       slot_end: datetime,
                       events: Sequence[CalendarEvent]) -> float:
    total = 0.0
    for ev in events:
        if not overlaps(slot_start, slot_end, ev.start_date, ev.end_date):
            continue
        inside = slot_start >= ev.start_date and slot_end <= ev.end_date
        weight = FULL_OVERLAP_WEIGHT if inside else PARTIAL_OVERLAP_WEIGHT
        total += weight * PRIORITY_OVERLAP_WEIGHTS.get(ev.priority, 1.0)
    return clamp(100.0 - total * POINTS_PER_OVERLAP_UNIT)


def preference_score(slot_start: datetime,
                     working_hours: Optional[WorkingHours],
                     constraints: Optional[Constraints]) -> float:
    score = 50.0
    local = slot_start.astimezone(resolve_timezone(working_hours.timezone if working_hours else None))
    minute = minutes_of_day(local)

    if working_hours is not None:
        if hhmm_to_minutes(working_hours.start) <= minute <= hhmm_to_minutes(working_hours.end):
            score += 30
        else:
            score -= 30

    if constraints is not None:
        if constraints.preferred_days:
            score += 20 if local.weekday() in constraints.preferred_days else -10
        if local.weekday() in constraints.avoid_days:
            score -= 30

    hour = local.hour
    if 10 <= hour <= 11 or 14 <= hour <= 15:
        score += 10
    if hour < 8 or hour >= 18:
        score -= 20
    return clamp(score)


def attendee_score(slot_start: datetime,
                   slot_end: datetime,
                   attendee_events: Dict[str, List[CalendarEvent]]) -> float:
    if not attendee_events:
        return 100.0
    available = 0
    for events in attendee_events.values():
        busy = any(overlaps(slot_start, slot_end, ev.start_date, ev.end_date) for ev in events)
        if not busy:
            available += 1
    return available / len(attendee_events) * 100.0


def disruption_score(move_count: int, total_events: int) -> float:
    if total_events == 0:
        return 100.0
    return clamp(100.0 - move_count / total_events * 100.0)


def buffer_score(slot_start: datetime,
                 slot_end: datetime,
                 events: Sequence[CalendarEvent],
                 min_buffer_minutes: int = MIN_EVENT_BUFFER_MINUTES) -> float:
    score = 100.0
    for ev in events:
        gap_before = (slot_start - ev.end_date).total_seconds() / 60
        if 0 < gap_before < min_buffer_minutes:
            score -= (min_buffer_minutes - gap_before) * 2
        gap_after = (ev.start_date - slot_end).total_seconds() / 60
        if 0 < gap_after < min_buffer_minutes:
            score -= (min_buffer_minutes - gap_after) * 2
    return max(0.0, score)


def composite_score(availability: float,
                    preference: float,
                    attendee: float,
                    disruption: float,
                    buffer: float) -> int:
    total = (availability * SCORE_WEIGHTS["availability"]
             + preference * SCORE_WEIGHTS["preference_match"]
             + attendee * SCORE_WEIGHTS["attendee_availability"]
             + disruption * SCORE_WEIGHTS["minimal_disruption"]
             + buffer * SCORE_WEIGHTS["buffer"])
    return int(clamp(round_half_up(total)))


def quality_tier(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 60:
        return "fair"
    return "poor"


_TIER_LABELS = {
    "excellent": "Excellent time slot",
    "good": "Good time slot",
    "fair": "Acceptable time slot",
    "poor": "Suboptimal time slot",
}


def build_reason(score: int, breakdown: ScoreBreakdown, conflict_count: int) -> str:
    parts = [_TIER_LABELS[quality_tier(score)]]
    if breakdown.availability == 100:
        parts.append("no conflicts")
    elif conflict_count > 0:
        parts.append(_plural(conflict_count, "conflict"))
    if breakdown.preference_match >= 80:
        parts.append("matches your preferences")
    elif breakdown.preference_match < 50:
        parts.append("outside preferred hours")
    if 75 <= breakdown.attendee_availability < 100:
        parts.append("most attendees available")
    elif breakdown.attendee_availability < 75:
        parts.append("some attendees busy")
    return ", ".join(parts)


def build_warnings(breakdown: ScoreBreakdown,
                   conflicts: Sequence[ConflictInfo],
                   has_attendee_data: bool) -> List[str]:
    warnings: List[str] = []
    if conflicts:
        warnings.append(_plural(len(conflicts), "scheduling conflict"))
    if breakdown.preference_match < 50:
        warnings.append("Outside preferred working hours")
    if has_attendee_data and breakdown.attendee_availability < 75:
        warnings.append("Some attendees may be unavailable")
    return warnings


def score_slot(slot_start: datetime,
               slot_end: datetime,
               context: SchedulingContext,
               buffer_minutes: int = MIN_EVENT_BUFFER_MINUTES) -> SuggestedSlot:
    """Score one candidate against the context and package it as a suggestion."""
    events = context.existing_events
    intent = context.parsed_intent

    conflicts = detect_conflicts(slot_start, slot_end, events)
    moves: List[EventMove] = []
    if conflicts:
        moves = propose_moves(conflicts, slot_start, slot_end, events)

    availability = availability_score(slot_start, slot_end, events)
    preference = preference_score(slot_start, context.working_hours, intent.constraints)
    attendee = attendee_score(slot_start, slot_end, context.attendee_events)
    disruption = disruption_score(len(moves), len(events))
    buffer = buffer_score(slot_start, slot_end, events, buffer_minutes)

    score = composite_score(availability, preference, attendee, disruption, buffer)
    breakdown = ScoreBreakdown(
        availability=round_half_up(availability),
        preference_match=round_half_up(preference),
        attendee_availability=round_half_up(attendee),
        minimal_disruption=round_half_up(disruption),
    )
    return SuggestedSlot(
        id=uuid.uuid4().hex,
        start_time=slot_start,
        end_time=slot_end,
        score=score,
        score_breakdown=breakdown,
        conflicts=conflicts,
        warnings=build_warnings(breakdown, conflicts, bool(context.attendee_events)),
        reason=build_reason(score, breakdown, len(conflicts)),
        required_moves=moves,
    )
