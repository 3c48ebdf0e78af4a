"""
Pytest fixtures for slotwise testing.

Provides:
- A fixed reference Monday and a clock helper
- Calendar event / intent / scheduling-context factories
- An API test client wired to in-memory collaborators
"""

import pytest
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from slotwise.agent.llm_provider import ProviderRegistry, ProviderSettings
from slotwise.app import create_app
from slotwise.models import CalendarEvent, ParsedIntent, SchedulingContext, WorkingHours
from slotwise.state import InMemoryAttendeeDirectory, InMemoryEventStore

UTC = ZoneInfo("UTC")
MONDAY = datetime(2026, 10, 19, tzinfo=UTC)


# =============================================================================
# TIME FIXTURES
# =============================================================================

@pytest.fixture
def monday():
    """Midnight UTC of Monday 2026-10-19."""
    return MONDAY


@pytest.fixture
def at():
    """Clock helper: at(10, 30) is 10:30 on the reference Monday, days= shifts the date."""
    def _at(hour: int, minute: int = 0, days: int = 0) -> datetime:
        return MONDAY + timedelta(days=days, hours=hour, minutes=minute)
    return _at


@pytest.fixture
def working_hours():
    return WorkingHours(start="09:00", end="17:00", timezone="UTC")


# =============================================================================
# CALENDAR FIXTURES
# =============================================================================

@pytest.fixture
def make_event():
    """Factory for existing calendar events."""
    def _make(event_id: str, start: datetime, end: datetime, **overrides) -> CalendarEvent:
        fields = {
            "id": event_id,
            "title": overrides.pop("title", f"Event {event_id}"),
            "start_date": start,
            "end_date": end,
            "user_id": overrides.pop("user_id", "user-1"),
        }
        fields.update(overrides)
        return CalendarEvent(**fields)
    return _make


@pytest.fixture
def make_intent():
    def _make(**overrides) -> ParsedIntent:
        fields = {"title": "Planning", "duration": 60, "confidence": 0.8}
        fields.update(overrides)
        return ParsedIntent(**fields)
    return _make


@pytest.fixture
def make_context(at, working_hours, make_intent):
    """Factory for a one-day scheduling context on the reference Monday."""
    def _make(events=None, intent=None, **overrides) -> SchedulingContext:
        fields = {
            "user_id": "user-1",
            "parsed_intent": intent or make_intent(),
            "search_window_start": at(0),
            "search_window_end": at(23, 59),
            "working_hours": working_hours,
            "existing_events": list(events or []),
        }
        fields.update(overrides)
        return SchedulingContext(**fields)
    return _make


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def api_settings():
    return ProviderSettings(kind="mock", enabled=True)


@pytest.fixture
def client(event_store, api_settings):
    """TestClient against an app with the deterministic provider and an in-memory store."""
    app = create_app(provider_registry=ProviderRegistry(settings=api_settings),
                     event_store=event_store,
                     attendee_directory=InMemoryAttendeeDirectory())
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user-1"}
