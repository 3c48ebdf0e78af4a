"""
Tests for the in-memory event store and attendee directory.
"""

import json
import pytest
from datetime import datetime

from slotwise.models import CalendarEvent, EventCreate
from slotwise.state import InMemoryAttendeeDirectory, InMemoryEventStore


class TestInMemoryEventStore:
    """Tests for listing, creating and moving events."""

    def test_window_is_closed_on_start(self, at, make_event):
        store = InMemoryEventStore(events=[
            make_event("at-start", at(9), at(10)),
            make_event("at-end", at(17), at(18)),
            make_event("after", at(17, 30), at(18)),
        ])
        found = store.list_events("user-1", at(9), at(17))
        assert [ev.id for ev in found] == ["at-start", "at-end"]

    def test_filters_by_user_and_workspace(self, at, make_event):
        store = InMemoryEventStore(events=[
            make_event("a", at(9), at(10), workspace_id="w1"),
            make_event("b", at(11), at(12), workspace_id="w2"),
            make_event("c", at(11), at(12), user_id="user-2", workspace_id="w1"),
        ])
        assert [ev.id for ev in store.list_events("user-1", at(0), at(23), "w1")] == ["a"]
        assert [ev.id for ev in store.list_events("user-1", at(0), at(23))] == ["a", "b"]

    def test_sorted_by_start(self, at, make_event):
        store = InMemoryEventStore(events=[make_event("late", at(15), at(16)), make_event("early", at(9), at(10))])
        assert [ev.id for ev in store.list_events("user-1", at(0), at(23))] == ["early", "late"]

    def test_create_and_move(self, at):
        store = InMemoryEventStore()
        event_id = store.create_event(EventCreate(title="Sync", start_date=at(9), end_date=at(10), user_id="user-1"))
        store.update_event_times(event_id, at(11), at(12))
        stored = store.get(event_id)
        assert stored.start_date == at(11)
        assert stored.updated_at is not None
        assert stored.created_at is not None

    def test_naive_times_are_stored_aware(self, at):
        """Test that naive timestamps are read in the default timezone and stay listable."""
        store = InMemoryEventStore()
        event_id = store.create_event(EventCreate(title="Sync",
                                                  start_date=datetime(2026, 10, 19, 9),
                                                  end_date=datetime(2026, 10, 19, 10),
                                                  user_id="user-1"))
        stored = store.get(event_id)
        assert stored.start_date == at(9)
        assert stored.start_date.tzinfo is not None
        assert [ev.id for ev in store.list_events("user-1", at(0), at(23))] == [event_id]

    def test_naive_move_is_stored_aware(self, at, make_event):
        store = InMemoryEventStore(events=[make_event("e1", at(9), at(10))])
        store.update_event_times("e1", datetime(2026, 10, 19, 11), datetime(2026, 10, 19, 12))
        assert store.get("e1").start_date == at(11)
        assert [ev.id for ev in store.list_events("user-1", at(0), at(23))] == ["e1"]

    def test_naive_event_loaded_from_data_is_aware(self, at):
        event = CalendarEvent(id="e1", start_date="2026-10-19T09:00:00", end_date="2026-10-19T10:00:00")
        assert event.start_date == at(9)
        assert event.end_date.utcoffset() is not None

    def test_move_unknown_event(self, at):
        with pytest.raises(KeyError):
            InMemoryEventStore().update_event_times("missing", at(9), at(10))

    def test_persistence_round_trip(self, at, tmp_path):
        data_file = tmp_path / "events.json"
        store = InMemoryEventStore(data_file=data_file)
        event_id = store.create_event(EventCreate(title="Sync", start_date=at(9), end_date=at(10), user_id="user-1"))
        assert json.loads(data_file.read_text(encoding="utf-8"))["version"] == 1

        reloaded = InMemoryEventStore(data_file=data_file)
        stored = reloaded.get(event_id)
        assert stored.title == "Sync"
        assert stored.start_date == at(9)

    def test_corrupt_file_is_ignored(self, tmp_path):
        data_file = tmp_path / "events.json"
        data_file.write_text("{not json", encoding="utf-8")
        assert InMemoryEventStore(data_file=data_file).all_events() == []


class TestInMemoryAttendeeDirectory:
    """Tests for attendee busy lookups."""

    def test_case_insensitive_lookup_within_window(self, at, make_event):
        directory = InMemoryAttendeeDirectory({
            "Alice@Example.com": [make_event("a1", at(10), at(11)), make_event("a2", at(10, days=5), at(11, days=5))],
        })
        busy = directory.events_for(["alice@example.com", "bob"], at(0), at(23))
        assert list(busy) == ["alice@example.com"]
        assert [ev.id for ev in busy["alice@example.com"]] == ["a1"]
