from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from .agent.llm_provider import ProviderRegistry
from .agent.orchestrator import build_scheduling_context, commit_slot, find_available_slots
from .config import API_BASE
from .errors import AIDisabledError, PartialCommitError, SchedulingError
from .models import (
    AIResponse,
    ClarifyRequest,
    ParseRequest,
    ScheduleRequest,
    ScheduleResult,
    SuggestRequest,
)
from .utils import _log_debug, ensure_aware, normalize_text, now, resolve_timezone

logger = logging.getLogger(__name__)

router = APIRouter()


def require_user_id(request: Request) -> str:
  user_id = (request.headers.get("X-User-Id") or "").strip()
  if not user_id:
    raise HTTPException(status_code=401, detail="X-User-Id header is required.")
  return user_id


def _registry(request: Request) -> ProviderRegistry:
  return request.app.state.provider_registry


def _ensure_ai_enabled(request: Request) -> ProviderRegistry:
  registry = _registry(request)
  if not registry.settings.enabled:
    raise _as_http_error(AIDisabledError("AI features are disabled."))
  return registry


def _as_http_error(exc: SchedulingError) -> HTTPException:
  if isinstance(exc, PartialCommitError):
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
  return HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post(f"{API_BASE}/ai/parse")
async def parse_request(body: ParseRequest, request: Request) -> AIResponse:
  require_user_id(request)
  registry = _ensure_ai_enabled(request)
  prompt = normalize_text(body.prompt)
  if not prompt:
    raise HTTPException(status_code=400, detail="Prompt is required.")

  tz = resolve_timezone(body.timezone)
  reference = ensure_aware(body.reference_time, tz) if body.reference_time else now(tz)
  provider = registry.get()
  try:
    intent = await provider.parse_intent(prompt, reference)
    question = None
    if intent.ambiguities:
      question = await provider.generate_clarification(prompt, list(intent.ambiguities))
  except SchedulingError as exc:
    raise _as_http_error(exc) from exc
  except Exception as exc:
    logger.exception("Parsing scheduling request failed")
    raise HTTPException(status_code=500, detail="Failed to parse scheduling request.") from exc

  _log_debug(f"[AI PARSE] provider={provider.name} ambiguities={intent.ambiguities}")
  return AIResponse(success=True,
                    parsed_intent=intent,
                    clarification_needed=bool(intent.ambiguities),
                    clarification_question=question)


@router.post(f"{API_BASE}/ai/suggest")
def suggest_slots(body: SuggestRequest, request: Request) -> AIResponse:
  user_id = require_user_id(request)
  _ensure_ai_enabled(request)
  if body.parsed_intent is None:
    raise HTTPException(status_code=400, detail="Parsed intent is required.")

  try:
    context = build_scheduling_context(
        user_id=user_id,
        intent=body.parsed_intent,
        store=request.app.state.event_store,
        attendee_directory=request.app.state.attendee_directory,
        workspace_id=body.workspace_id,
        search_window_days=body.search_window_days,
        working_hours=body.working_hours,
    )
    suggestions = find_available_slots(context)
  except SchedulingError as exc:
    raise _as_http_error(exc) from exc
  except Exception as exc:
    logger.exception("Slot suggestion failed")
    raise HTTPException(status_code=500, detail="Failed to generate suggestions.") from exc

  return AIResponse(success=True, parsed_intent=body.parsed_intent, suggestions=suggestions)


@router.post(f"{API_BASE}/ai/schedule")
def schedule_slot(body: ScheduleRequest, request: Request) -> ScheduleResult:
  user_id = require_user_id(request)
  _ensure_ai_enabled(request)
  if body.selected_slot is None or body.parsed_intent is None:
    raise HTTPException(status_code=400, detail="Selected slot and parsed intent are required.")

  try:
    result = commit_slot(body.selected_slot,
                         body.parsed_intent,
                         store=request.app.state.event_store,
                         user_id=user_id,
                         workspace_id=body.workspace_id,
                         auto_resolve_conflicts=body.auto_resolve_conflicts)
  except SchedulingError as exc:
    raise _as_http_error(exc) from exc
  except Exception as exc:
    logger.exception("Scheduling failed")
    raise HTTPException(status_code=500, detail="Failed to schedule event.") from exc

  if body.notify_attendees and body.parsed_intent.attendees:
    logger.info("Attendee notification requested for event %s but no notifier is configured", result.event_id)
  return result


@router.post(f"{API_BASE}/ai/clarify")
async def clarify(body: ClarifyRequest, request: Request) -> AIResponse:
  require_user_id(request)
  registry = _ensure_ai_enabled(request)
  prompt = normalize_text(body.prompt)
  if not prompt or not body.ambiguities:
    raise HTTPException(status_code=400, detail="Prompt and ambiguities are required.")
  try:
    question = await registry.get().generate_clarification(prompt, body.ambiguities)
  except SchedulingError as exc:
    raise _as_http_error(exc) from exc
  return AIResponse(success=True, clarification_needed=True, clarification_question=question)


@router.get(f"{API_BASE}/ai/status")
def ai_status(request: Request) -> Dict[str, Any]:
  return _registry(request).info()
