"""
Tests for the OpenAI / Gemini completion helpers, with mocked clients.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from slotwise.agent.schemas import IntentExtractionOutput
from slotwise.llm import (
    INTENT_EXTRACTION_PROMPT,
    gemini_structured_completion,
    gemini_text_completion,
    openai_structured_completion,
    openai_text_completion,
    validate_structured_response,
)


def _openai_client(content):
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion)
    return client


def _gemini_client(text):
    client = MagicMock()
    client.models.generate_content.return_value = SimpleNamespace(text=text, candidates=None)
    return client


class TestValidateStructuredResponse:
    """Tests for lenient JSON parsing of model output."""

    def test_plain_json(self):
        output = validate_structured_response(IntentExtractionOutput, '{"title": "Sync", "duration": 30}')
        assert output.title == "Sync"
        assert output.duration == 30

    def test_fenced_json(self):
        raw = '```json\n{"title": "Sync"}\n```'
        assert validate_structured_response(IntentExtractionOutput, raw).title == "Sync"

    def test_json_inside_prose(self):
        raw = 'Here you go: {"title": "Sync"} hope that helps'
        assert validate_structured_response(IntentExtractionOutput, raw).title == "Sync"

    @pytest.mark.parametrize("raw", ["", "no json here", '{"priority": "extreme"}'])
    def test_hopeless_output(self, raw):
        assert validate_structured_response(IntentExtractionOutput, raw) is None


class TestOpenAI:
    """Tests for the OpenAI chat-completions helpers."""

    @pytest.mark.asyncio
    async def test_structured_completion(self):
        client = _openai_client('{"title": "Sync", "start_date": "2026-10-20T14:00"}')
        output, raw = await openai_structured_completion(client,
                                                          model="gpt-4o-mini",
                                                          system_prompt=INTENT_EXTRACTION_PROMPT,
                                                          user_payload={"request": "sync tomorrow 2pm"},
                                                          response_model=IntentExtractionOutput)
        assert output.start_date == "2026-10-20T14:00"
        assert raw.startswith("{")
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_text_completion(self):
        client = _openai_client("  When works for you?  ")
        text = await openai_text_completion(client,
                                            model="gpt-4o-mini",
                                            system_prompt="Ask one question.",
                                            user_payload={"missing": ["start_time"]})
        assert text == "When works for you?"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["temperature"] == 0.7


class TestGemini:
    """Tests for the Gemini generate_content helpers."""

    @pytest.mark.asyncio
    async def test_structured_completion(self):
        client = _gemini_client('```json\n{"title": "Sync"}\n```')
        output, _ = await gemini_structured_completion(client,
                                                       model="gemini-2.0-flash",
                                                       system_prompt=INTENT_EXTRACTION_PROMPT,
                                                       user_payload={"request": "sync"},
                                                       response_model=IntentExtractionOutput)
        assert output.title == "Sync"
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "models/gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_text_from_candidates(self):
        part = SimpleNamespace(text="Who should attend?")
        response = SimpleNamespace(text=None, candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])
        client = MagicMock()
        client.models.generate_content.return_value = response
        text = await gemini_text_completion(client,
                                            model="models/gemini-2.0-flash",
                                            system_prompt="Ask one question.",
                                            user_payload={"missing": ["attendees"]})
        assert text == "Who should attend?"
