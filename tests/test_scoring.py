"""
Tests for slot scoring.

Tests cover:
- Each scoring criterion
- Weighted composite and rounding
- Reason and warning text
- Full score_slot packaging
"""

import pytest

from slotwise.agent.scoring import (
    attendee_score,
    availability_score,
    buffer_score,
    build_reason,
    build_warnings,
    composite_score,
    disruption_score,
    preference_score,
    quality_tier,
    score_slot,
)
from slotwise.models import ConflictInfo, Constraints, ScoreBreakdown


class TestAvailability:
    """Tests for overlap penalties."""

    def test_free_slot(self, at, make_event):
        assert availability_score(at(9), at(10), [make_event("e1", at(10), at(11))]) == 100

    def test_full_overlap_counts_double(self, at, make_event):
        events = [make_event("e1", at(10), at(11))]
        assert availability_score(at(10), at(11), events) == 80

    def test_partial_overlap(self, at, make_event):
        events = [make_event("e1", at(10), at(11))]
        assert availability_score(at(10, 30), at(11, 30), events) == 90

    @pytest.mark.parametrize("priority,expected", [("low", 85), ("medium", 80), ("high", 70)])
    def test_priority_weighting(self, at, make_event, priority, expected):
        events = [make_event("e1", at(10), at(11), priority=priority)]
        assert availability_score(at(10), at(11), events) == expected

    def test_never_below_zero(self, at, make_event):
        events = [make_event(f"e{i}", at(9), at(12), priority="high") for i in range(10)]
        assert availability_score(at(10), at(11), events) == 0


class TestPreference:
    """Tests for working-hours, weekday and time-of-day preferences."""

    def test_mid_morning_in_working_hours(self, at, working_hours):
        assert preference_score(at(10), working_hours, None) == 90

    def test_working_hours_end_is_inclusive(self, at, working_hours):
        assert preference_score(at(17), working_hours, None) == 80

    def test_early_morning_outside_hours(self, at, working_hours):
        assert preference_score(at(7), working_hours, None) == 0

    def test_no_working_hours(self, at):
        assert preference_score(at(12), None, None) == 50

    def test_preferred_day_clamps_to_100(self, at, working_hours):
        assert preference_score(at(10), working_hours, Constraints(preferred_days=[0])) == 100

    def test_non_preferred_day(self, at, working_hours):
        assert preference_score(at(10), working_hours, Constraints(preferred_days=[2])) == 80

    def test_avoided_day(self, at, working_hours):
        assert preference_score(at(10), working_hours, Constraints(avoid_days=[0])) == 60


class TestOtherCriteria:
    """Tests for attendee, disruption and buffer criteria."""

    def test_no_attendee_data_is_full_score(self, at):
        assert attendee_score(at(10), at(11), {}) == 100

    def test_half_of_attendees_busy(self, at, make_event):
        busy = {"alice": [make_event("a1", at(10), at(11))], "bob": []}
        assert attendee_score(at(10), at(11), busy) == 50

    def test_disruption(self):
        assert disruption_score(0, 0) == 100
        assert disruption_score(1, 4) == 75
        assert disruption_score(1, 1) == 0

    def test_buffer_before(self, at, make_event):
        events = [make_event("e1", at(9), at(9, 50))]
        assert buffer_score(at(10), at(11), events) == 90

    def test_buffer_after(self, at, make_event):
        events = [make_event("e1", at(11, 5), at(12))]
        assert buffer_score(at(10), at(11), events) == 80

    def test_touching_neighbours_are_not_penalized(self, at, make_event):
        events = [make_event("e1", at(9), at(10)), make_event("e2", at(11), at(12))]
        assert buffer_score(at(10), at(11), events) == 100


class TestComposite:
    """Tests for the weighted total and text output."""

    def test_weights_and_half_up_rounding(self):
        assert composite_score(100, 90, 100, 100, 100) == 98

    def test_deterministic(self, at, make_event, make_context):
        context = make_context(events=[make_event("e1", at(10), at(11))])
        first = score_slot(at(10), at(11), context)
        second = score_slot(at(10), at(11), context)
        assert first.score == second.score
        assert first.score_breakdown == second.score_breakdown

    @pytest.mark.parametrize("score,tier", [(95, "excellent"), (90, "excellent"), (75, "good"), (60, "fair"), (59, "poor")])
    def test_quality_tier(self, score, tier):
        assert quality_tier(score) == tier

    def test_reason_for_clean_slot(self):
        breakdown = ScoreBreakdown(availability=100, preference_match=90,
                                   attendee_availability=100, minimal_disruption=100)
        assert build_reason(98, breakdown, 0) == "Excellent time slot, no conflicts, matches your preferences"

    def test_reason_with_conflicts_and_busy_attendees(self):
        breakdown = ScoreBreakdown(availability=60, preference_match=40,
                                   attendee_availability=50, minimal_disruption=100)
        reason = build_reason(55, breakdown, 2)
        assert reason == "Suboptimal time slot, 2 conflicts, outside preferred hours, some attendees busy"

    def test_warnings(self, at):
        breakdown = ScoreBreakdown(availability=80, preference_match=40,
                                   attendee_availability=50, minimal_disruption=100)
        conflict = ConflictInfo(event_id="e1", event_title="x", event_start=at(10), event_end=at(11),
                                severity="soft", can_move=False)
        assert build_warnings(breakdown, [conflict], True) == [
            "1 scheduling conflict",
            "Outside preferred working hours",
            "Some attendees may be unavailable",
        ]
        assert build_warnings(breakdown, [], False) == ["Outside preferred working hours"]


class TestScoreSlot:
    """Tests for the packaged suggestion."""

    def test_immovable_conflict(self, at, make_event, make_context):
        context = make_context(events=[make_event("e1", at(10), at(11), is_immutable=True)])
        slot = score_slot(at(10), at(11), context)
        assert slot.score == 91
        assert slot.score_breakdown.availability == 80
        assert slot.score_breakdown.preference_match == 90
        assert slot.conflicts[0].severity == "hard"
        assert slot.required_moves == []
        assert slot.warnings == ["1 scheduling conflict"]
        assert slot.reason == "Excellent time slot, 1 conflict, matches your preferences"

    def test_movable_conflict_gets_a_move(self, at, make_event, make_context):
        context = make_context(events=[make_event("e1", at(10), at(11), priority="low", is_flexible=True)])
        slot = score_slot(at(10), at(11), context)
        assert slot.conflicts[0].can_move is True
        assert slot.required_moves[0].proposed_start == at(11, 15)
        assert slot.score_breakdown.minimal_disruption == 0
        assert slot.score == 82

    def test_free_slot(self, at, make_context):
        slot = score_slot(at(11), at(12), make_context())
        assert slot.score == 98
        assert slot.conflicts == []
        assert slot.warnings == []
        assert slot.start_time == at(11)
        assert slot.end_time == at(12)
