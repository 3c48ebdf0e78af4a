"""
Tests for the HTTP endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from slotwise.agent.llm_provider import DeterministicProvider, ProviderBuildResult, ProviderRegistry, ProviderSettings
from slotwise.app import create_app
from slotwise.errors import RateLimitedError
from slotwise.state import InMemoryAttendeeDirectory, InMemoryEventStore

API = "/api/ai"


class RateLimitedProvider(DeterministicProvider):
    name = "limited"
    external = True

    async def parse_intent(self, text, reference_time=None):
        raise RateLimitedError("limited rate limit persisted after 3 retries")


def _intent_payload(**overrides):
    payload = {
        "title": "Planning",
        "start_date": "2026-10-19T09:00:00+00:00",
        "duration": 60,
        "confidence": 0.8,
    }
    payload.update(overrides)
    return payload


def _slot_payload(start, end):
    return {
        "id": f"{start}/{end}",
        "start_time": start,
        "end_time": end,
        "score": 90,
        "score_breakdown": {},
    }


class TestAuthAndFlags:
    """Tests for user identification and the feature flag."""

    def test_missing_user_id(self, client):
        response = client.post(f"{API}/parse", json={"prompt": "Team sync tomorrow at 2pm"})
        assert response.status_code == 401

    def test_ai_disabled(self, event_store, auth_headers):
        registry = ProviderRegistry(settings=ProviderSettings(kind="mock", enabled=False))
        client = TestClient(create_app(provider_registry=registry, event_store=event_store))
        response = client.post(f"{API}/parse", json={"prompt": "Team sync"}, headers=auth_headers)
        assert response.status_code == 403

    def test_status_needs_no_user(self, client):
        response = client.get(f"{API}/status")
        assert response.status_code == 200
        assert response.json()["active"] == "mock"


class TestParse:
    """Tests for /ai/parse."""

    def test_parse(self, client, auth_headers):
        response = client.post(f"{API}/parse", headers=auth_headers, json={
            "prompt": "Team sync tomorrow at 2pm for 30 minutes with alice@example.com",
            "timezone": "UTC",
            "reference_time": "2026-10-19T08:00:00+00:00",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["clarification_needed"] is False
        intent = data["parsed_intent"]
        assert intent["title"] == "Team sync"
        assert intent["duration"] == 30
        assert intent["start_date"].startswith("2026-10-20T14:00")

    def test_parse_asks_for_missing_time(self, client, auth_headers):
        response = client.post(f"{API}/parse", headers=auth_headers, json={"prompt": "Coffee chat"})
        data = response.json()
        assert data["clarification_needed"] is True
        assert data["clarification_question"].startswith("When would you like to schedule")

    def test_empty_prompt(self, client, auth_headers):
        response = client.post(f"{API}/parse", headers=auth_headers, json={"prompt": "   "})
        assert response.status_code == 400

    def test_rate_limit_maps_to_429(self, event_store, auth_headers):
        settings = ProviderSettings(kind="limited", enabled=True)
        registry = ProviderRegistry(settings=settings, builders={
            "limited": lambda s: ProviderBuildResult("limited", provider=RateLimitedProvider()),
            "mock": lambda s: ProviderBuildResult("mock", provider=DeterministicProvider()),
        })
        client = TestClient(create_app(provider_registry=registry, event_store=event_store))
        response = client.post(f"{API}/parse", headers=auth_headers, json={"prompt": "Team sync"})
        assert response.status_code == 429


class TestSuggest:
    """Tests for /ai/suggest."""

    def test_suggest(self, client, auth_headers):
        response = client.post(f"{API}/suggest", headers=auth_headers, json={
            "parsed_intent": _intent_payload(),
            "search_window_days": 1,
        })
        assert response.status_code == 200
        suggestions = response.json()["suggestions"]
        assert 0 < len(suggestions) <= 10
        scores = [s["score"] for s in suggestions]
        assert scores == sorted(scores, reverse=True)

    def test_suggest_requires_intent(self, client, auth_headers):
        response = client.post(f"{API}/suggest", headers=auth_headers, json={})
        assert response.status_code == 400

    def test_empty_window(self, client, auth_headers):
        intent = _intent_payload(constraints={"must_be_before": "2026-10-19T08:00:00+00:00"})
        response = client.post(f"{API}/suggest", headers=auth_headers, json={"parsed_intent": intent})
        assert response.status_code == 400

    def test_window_days_are_bounded(self, client, auth_headers):
        response = client.post(f"{API}/suggest", headers=auth_headers, json={
            "parsed_intent": _intent_payload(),
            "search_window_days": 90,
        })
        assert response.status_code == 422


class TestScheduleAndClarify:
    """Tests for /ai/schedule and /ai/clarify."""

    def test_schedule(self, client, auth_headers, event_store):
        suggest = client.post(f"{API}/suggest", headers=auth_headers, json={
            "parsed_intent": _intent_payload(),
            "search_window_days": 1,
        }).json()
        slot = suggest["suggestions"][0]
        response = client.post(f"{API}/schedule", headers=auth_headers, json={
            "selected_slot": slot,
            "parsed_intent": _intent_payload(),
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        stored = event_store.get(data["event_id"])
        assert stored.title == "Planning"
        assert stored.user_id == "user-1"

    def test_naive_booking_still_blocks_later_suggestions(self, client, auth_headers, event_store):
        """Test that a booking sent without an offset is seen as busy by the next search."""
        for start, end in (("2026-10-19T10:00:00", "2026-10-19T11:00:00"),
                           ("2026-10-19T14:00:00+00:00", "2026-10-19T15:00:00+00:00")):
            response = client.post(f"{API}/schedule", headers=auth_headers, json={
                "selected_slot": _slot_payload(start, end),
                "parsed_intent": _intent_payload(),
            })
            assert response.status_code == 200

        stored = event_store.all_events()
        assert len(stored) == 2
        assert all(ev.start_date.tzinfo is not None for ev in stored)

        response = client.post(f"{API}/suggest", headers=auth_headers, json={
            "parsed_intent": _intent_payload(),
            "search_window_days": 1,
        })
        assert response.status_code == 200
        suggestions = response.json()["suggestions"]
        assert len(suggestions) == 10
        busy = [("2026-10-19T10:00", "2026-10-19T11:00"), ("2026-10-19T14:00", "2026-10-19T15:00")]
        for slot in suggestions:
            start, end = slot["start_time"][:16], slot["end_time"][:16]
            assert not any(start < busy_end and end > busy_start for busy_start, busy_end in busy)
            assert slot["conflicts"] == []

    def test_working_hours_must_end_after_start(self, client, auth_headers):
        response = client.post(f"{API}/suggest", headers=auth_headers, json={
            "parsed_intent": _intent_payload(),
            "working_hours": {"start": "17:00", "end": "09:00"},
        })
        assert response.status_code == 422

    def test_schedule_requires_slot(self, client, auth_headers):
        response = client.post(f"{API}/schedule", headers=auth_headers, json={"parsed_intent": _intent_payload()})
        assert response.status_code == 400

    def test_clarify(self, client, auth_headers):
        response = client.post(f"{API}/clarify", headers=auth_headers, json={
            "prompt": "Lunch with the team",
            "ambiguities": ["start_time"],
        })
        assert response.status_code == 200
        assert response.json()["clarification_question"].startswith("When would you like")

    @pytest.mark.parametrize("payload", [
        {"prompt": "Lunch", "ambiguities": []},
        {"prompt": "", "ambiguities": ["start_time"]},
    ])
    def test_clarify_requires_prompt_and_ambiguities(self, client, auth_headers, payload):
        response = client.post(f"{API}/clarify", headers=auth_headers, json=payload)
        assert response.status_code == 400
