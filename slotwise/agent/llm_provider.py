from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from ..config import (
    AI_FEATURES_ENABLED,
    AI_PROVIDER,
    DEFAULT_DURATION_MINUTES,
    DETERMINISTIC_MAX_SUGGESTIONS,
    DETERMINISTIC_SCAN_LIMIT,
    GEMINI_API_KEY,
    GEMINI_MODEL,
    LLM_MAX_RETRIES,
    LLM_PARSE_CONFIDENCE,
    LLM_RETRY_INITIAL_DELAY_MS,
    LLM_TIMEOUT_SECONDS,
    MIN_SUGGESTION_SCORE,
    OPENAI_API_KEY,
    OPENAI_MODEL,
    SUPPORTED_PROVIDERS,
)
from ..errors import ProviderTimeoutError, ProviderUnavailableError, RateLimitedError
from ..llm import (
    CLARIFICATION_PROMPT,
    INTENT_EXTRACTION_PROMPT,
    build_gemini_client,
    build_openai_client,
    gemini_structured_completion,
    gemini_text_completion,
    openai_structured_completion,
    openai_text_completion,
)
from ..models import (
    Constraints,
    ParsedIntent,
    Recurrence,
    SchedulingContext,
    ScoreBreakdown,
    SuggestedSlot,
)
from ..utils import (
    _log_debug,
    ensure_aware,
    hhmm_to_minutes,
    now,
    parse_iso_datetime,
    resolve_timezone,
)
from .conflict_manager import detect_conflicts
from .intent_extractor import extract_intent
from .orchestrator import find_available_slots
from .schemas import IntentExtractionOutput

logger = logging.getLogger(__name__)

R = TypeVar("R")

RATE_LIMIT_MARKERS = ("429", "quota", "rate limit", "resource_exhausted")

CLARIFICATION_QUESTIONS = {
    "start_time": "When would you like to schedule this event? Please specify a date and time.",
    "duration": "How long should this event be?",
    "attendees": "Who should attend this meeting?",
}
DEFAULT_CLARIFICATION = "Could you provide more details about when you want to schedule this event?"


def fallback_clarification(ambiguities: List[str]) -> str:
  for key in ("start_time", "duration", "attendees"):
    if key in ambiguities:
      return CLARIFICATION_QUESTIONS[key]
  return DEFAULT_CLARIFICATION


# -------------------------
# Call policy
# -------------------------
def is_rate_limit_error(exc: BaseException) -> bool:
  if getattr(exc, "status_code", None) == 429:
    return True
  text = str(exc).lower()
  return any(marker in text for marker in RATE_LIMIT_MARKERS)


async def call_with_retry(fn: Callable[[], Awaitable[R]],
                          *,
                          provider: str,
                          timeout: float = LLM_TIMEOUT_SECONDS,
                          max_retries: int = LLM_MAX_RETRIES,
                          initial_delay_ms: int = LLM_RETRY_INITIAL_DELAY_MS,
                          sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> R:
  """
  Await ``fn()`` under a timeout, retrying only rate-limit failures.

  Delays start at ``initial_delay_ms`` and double per retry. Anything that
  is not a rate limit is raised unchanged on the first occurrence.
  """
  attempt = 0
  while True:
    try:
      return await asyncio.wait_for(fn(), timeout=timeout)
    except asyncio.TimeoutError as exc:
      raise ProviderTimeoutError(f"{provider} did not answer within {timeout:g}s") from exc
    except Exception as exc:
      if not is_rate_limit_error(exc):
        raise
      if attempt >= max_retries:
        raise RateLimitedError(f"{provider} rate limit persisted after {max_retries} retries") from exc
      delay_ms = initial_delay_ms * (2 ** attempt)
      attempt += 1
      logger.warning("%s rate limited, retrying in %dms (attempt %d/%d)", provider, delay_ms, attempt, max_retries)
      await sleep(delay_ms / 1000)


# -------------------------
# Providers
# -------------------------
class SchedulingProvider(ABC):
  """Interface every intent/suggestion backend implements."""

  name = "base"
  external = False

  @abstractmethod
  async def parse_intent(self, text: str, reference_time: Optional[datetime] = None) -> ParsedIntent:
    ...

  @abstractmethod
  async def suggest_slots(self, context: SchedulingContext) -> List[SuggestedSlot]:
    ...

  @abstractmethod
  async def generate_clarification(self, text: str, ambiguities: List[str]) -> str:
    ...


class DeterministicProvider(SchedulingProvider):
  """Rule-based provider. Always available, no network."""

  name = "mock"

  async def parse_intent(self, text: str, reference_time: Optional[datetime] = None) -> ParsedIntent:
    return extract_intent(text, reference_time)

  async def suggest_slots(self, context: SchedulingContext) -> List[SuggestedSlot]:
    return hourly_suggestions(context)

  async def generate_clarification(self, text: str, ambiguities: List[str]) -> str:
    return fallback_clarification(ambiguities)


def _hourly_reason(score: int, has_conflicts: bool, in_hours: bool) -> str:
  if score >= 90:
    parts = ["Excellent time slot"]
  elif score >= 75:
    parts = ["Good time slot"]
  elif score >= 60:
    parts = ["Acceptable time slot"]
  else:
    parts = ["Suboptimal time slot"]
  parts.append("has conflicts" if has_conflicts else "no conflicts")
  parts.append("within working hours" if in_hours else "outside working hours")
  return ", ".join(parts)


def hourly_suggestions(context: SchedulingContext) -> List[SuggestedSlot]:
  """
  Coarse suggestions on an hourly grid.

  Score is 100 minus 20 per conflict and minus 30 outside working hours.
  Collects at most 10 slots scoring 40 or more and returns the best 5.
  """
  wh = context.working_hours
  tz = resolve_timezone(wh.timezone if wh else None)
  duration = timedelta(minutes=context.parsed_intent.duration or DEFAULT_DURATION_MINUTES)
  window_start = ensure_aware(context.search_window_start, tz).astimezone(tz)
  window_end = ensure_aware(context.search_window_end, tz)
  cursor = window_start
  start_hour = hhmm_to_minutes(wh.start) // 60 if wh else 0
  end_hour = hhmm_to_minutes(wh.end) // 60 if wh else 24
  if wh:
    cursor = cursor.replace(hour=start_hour, minute=0, second=0, microsecond=0)
  # never emit before the window opens
  while cursor < window_start:
    cursor += timedelta(hours=1)

  slots: List[SuggestedSlot] = []
  while cursor < window_end and len(slots) < DETERMINISTIC_SCAN_LIMIT:
    if wh and cursor.hour >= end_hour:
      cursor = (cursor + timedelta(days=1)).replace(hour=start_hour, minute=0)
      continue
    slot_end = cursor + duration
    conflicts = detect_conflicts(cursor, slot_end, context.existing_events)
    in_hours = not wh or start_hour <= cursor.hour < end_hour
    score = 100 - 20 * len(conflicts) - (0 if in_hours else 30)
    score = max(0, min(100, score))
    if score >= MIN_SUGGESTION_SCORE:
      slots.append(SuggestedSlot(
          id=f"{cursor.isoformat()}/{duration}",
          start_time=cursor,
          end_time=slot_end,
          score=score,
          score_breakdown=ScoreBreakdown(
              availability=50 if conflicts else 100,
              preference_match=100 if in_hours else 50,
              attendee_availability=100,
              minimal_disruption=100,
          ),
          conflicts=conflicts,
          warnings=["Has scheduling conflicts"] if conflicts else [],
          reason=_hourly_reason(score, bool(conflicts), in_hours),
      ))
    cursor = cursor + timedelta(hours=1)

  slots.sort(key=lambda s: (-s.score, s.start_time))
  return slots[:DETERMINISTIC_MAX_SUGGESTIONS]


def intent_from_output(output: IntentExtractionOutput, reference: datetime) -> ParsedIntent:
  tz = reference.tzinfo
  start = parse_iso_datetime(output.start_date, tz)
  end = parse_iso_datetime(output.end_date, tz)
  duration = output.duration if output.duration and output.duration > 0 else None
  if duration is None and start and end and end > start:
    duration = int((end - start).total_seconds() // 60)
  duration = duration or DEFAULT_DURATION_MINUTES
  if start is not None and end is None:
    end = start + timedelta(minutes=duration)

  ambiguities: List[str] = []
  if start is None:
    ambiguities.append("start_time")
  title = (output.title or "").strip()
  if not title:
    ambiguities.append("title")

  constraints = None
  if output.constraints is not None:
    try:
      constraints = Constraints(**output.constraints.model_dump())
    except ValueError as exc:
      _log_debug(f"[LLM INTENT] dropped constraints: {exc}")
  recurrence = None
  if output.recurrence is not None:
    try:
      recurrence = Recurrence(
          frequency=output.recurrence.frequency,
          interval=output.recurrence.interval,
          days_of_week=output.recurrence.days_of_week,
          end_date=parse_iso_datetime(output.recurrence.end_date, tz),
          count=output.recurrence.count,
      )
    except ValueError as exc:
      _log_debug(f"[LLM INTENT] dropped recurrence: {exc}")

  return ParsedIntent(
      title=title,
      description=output.description,
      start_date=start,
      end_date=end,
      duration=duration,
      recurrence=recurrence,
      attendees=[a.strip() for a in output.attendees if a and a.strip()],
      location=output.location,
      priority=output.priority or "medium",
      constraints=constraints,
      is_flexible=output.is_flexible is not False,
      is_immutable=bool(output.is_immutable),
      confidence=LLM_PARSE_CONFIDENCE,
      ambiguities=ambiguities,
  )


class LanguageModelProvider(SchedulingProvider):
  """Shared parse/clarify flow for the hosted model backends."""

  external = True

  def __init__(self,
               client: Any,
               model: str,
               *,
               timeout: float = LLM_TIMEOUT_SECONDS,
               max_retries: int = LLM_MAX_RETRIES,
               initial_delay_ms: int = LLM_RETRY_INITIAL_DELAY_MS,
               sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
    self.client = client
    self.model = model
    self.timeout = timeout
    self.max_retries = max_retries
    self.initial_delay_ms = initial_delay_ms
    self._sleep = sleep

  @abstractmethod
  async def _structured(self, payload: Dict[str, Any]) -> Tuple[Optional[IntentExtractionOutput], str]:
    ...

  @abstractmethod
  async def _text(self, payload: Dict[str, Any]) -> str:
    ...

  async def _call(self, fn: Callable[[], Awaitable[R]]) -> R:
    return await call_with_retry(fn,
                                 provider=self.name,
                                 timeout=self.timeout,
                                 max_retries=self.max_retries,
                                 initial_delay_ms=self.initial_delay_ms,
                                 sleep=self._sleep)

  async def parse_intent(self, text: str, reference_time: Optional[datetime] = None) -> ParsedIntent:
    reference = ensure_aware(reference_time) if reference_time else now()
    payload = {
        "request": text,
        "now": reference.strftime("%Y-%m-%dT%H:%M"),
        "timezone": str(reference.tzinfo),
    }
    output, raw = await self._call(lambda: self._structured(payload))
    if output is None:
      logger.warning("%s returned unparseable intent output, using rule-based extraction", self.name)
      _log_debug(f"[LLM INTENT] raw={raw[:500]!r}")
      return extract_intent(text, reference)
    return intent_from_output(output, reference)

  async def suggest_slots(self, context: SchedulingContext) -> List[SuggestedSlot]:
    return find_available_slots(context)

  async def generate_clarification(self, text: str, ambiguities: List[str]) -> str:
    payload = {"request": text, "missing": list(ambiguities)}
    question = await self._call(lambda: self._text(payload))
    return question.strip() or fallback_clarification(ambiguities)


class OpenAIProvider(LanguageModelProvider):
  name = "openai"

  async def _structured(self, payload: Dict[str, Any]) -> Tuple[Optional[IntentExtractionOutput], str]:
    return await openai_structured_completion(self.client,
                                              model=self.model,
                                              system_prompt=INTENT_EXTRACTION_PROMPT,
                                              user_payload=payload,
                                              response_model=IntentExtractionOutput,
                                              temperature=0.3,
                                              max_tokens=500)

  async def _text(self, payload: Dict[str, Any]) -> str:
    return await openai_text_completion(self.client,
                                        model=self.model,
                                        system_prompt=CLARIFICATION_PROMPT,
                                        user_payload=payload,
                                        temperature=0.7,
                                        max_tokens=100)


class GeminiProvider(LanguageModelProvider):
  name = "gemini"

  async def _structured(self, payload: Dict[str, Any]) -> Tuple[Optional[IntentExtractionOutput], str]:
    return await gemini_structured_completion(self.client,
                                              model=self.model,
                                              system_prompt=INTENT_EXTRACTION_PROMPT,
                                              user_payload=payload,
                                              response_model=IntentExtractionOutput,
                                              temperature=0.3,
                                              max_tokens=500)

  async def _text(self, payload: Dict[str, Any]) -> str:
    return await gemini_text_completion(self.client,
                                        model=self.model,
                                        system_prompt=CLARIFICATION_PROMPT,
                                        user_payload=payload,
                                        temperature=0.7,
                                        max_tokens=100)


# -------------------------
# Registry
# -------------------------
@dataclass
class ProviderSettings:
  kind: str = AI_PROVIDER
  enabled: bool = AI_FEATURES_ENABLED
  openai_api_key: Optional[str] = OPENAI_API_KEY
  openai_model: str = OPENAI_MODEL
  gemini_api_key: Optional[str] = GEMINI_API_KEY
  gemini_model: str = GEMINI_MODEL
  timeout: float = LLM_TIMEOUT_SECONDS
  max_retries: int = LLM_MAX_RETRIES
  initial_delay_ms: int = LLM_RETRY_INITIAL_DELAY_MS

  def validate(self) -> List[str]:
    errors: List[str] = []
    if self.kind not in SUPPORTED_PROVIDERS:
      errors.append(f"Unsupported AI_PROVIDER {self.kind!r}; expected one of {', '.join(SUPPORTED_PROVIDERS)}")
    if self.kind == "openai" and not self.openai_api_key:
      errors.append("OPENAI_API_KEY is required when AI_PROVIDER=openai")
    if self.kind == "gemini" and not self.gemini_api_key:
      errors.append("GEMINI_API_KEY is required when AI_PROVIDER=gemini")
    return errors


@dataclass
class ProviderBuildResult:
  """Outcome of constructing one provider: either ``provider`` or ``error``."""
  kind: str
  provider: Optional[SchedulingProvider] = None
  error: Optional[str] = None

  @property
  def ok(self) -> bool:
    return self.provider is not None


def _build_openai(settings: ProviderSettings) -> ProviderBuildResult:
  if not settings.openai_api_key:
    return ProviderBuildResult("openai", error="OPENAI_API_KEY is not set")
  try:
    client = build_openai_client(settings.openai_api_key)
  except Exception as exc:
    return ProviderBuildResult("openai", error=f"OpenAI client construction failed: {exc}")
  return ProviderBuildResult("openai", provider=OpenAIProvider(
      client, settings.openai_model,
      timeout=settings.timeout,
      max_retries=settings.max_retries,
      initial_delay_ms=settings.initial_delay_ms))


def _build_gemini(settings: ProviderSettings) -> ProviderBuildResult:
  if not settings.gemini_api_key:
    return ProviderBuildResult("gemini", error="GEMINI_API_KEY is not set")
  try:
    client = build_gemini_client(settings.gemini_api_key)
  except Exception as exc:
    return ProviderBuildResult("gemini", error=f"Gemini client construction failed: {exc}")
  return ProviderBuildResult("gemini", provider=GeminiProvider(
      client, settings.gemini_model,
      timeout=settings.timeout,
      max_retries=settings.max_retries,
      initial_delay_ms=settings.initial_delay_ms))


def _build_deterministic(settings: ProviderSettings) -> ProviderBuildResult:
  return ProviderBuildResult("mock", provider=DeterministicProvider())


DEFAULT_BUILDERS: Dict[str, Callable[[ProviderSettings], ProviderBuildResult]] = {
    "openai": _build_openai,
    "gemini": _build_gemini,
    "mock": _build_deterministic,
}


@dataclass
class ProviderRegistry:
  """
  Owns the provider instances of one process.

  Each kind is built at most once, on first request, and cached for the
  life of the registry. A kind that fails to build is permanently served
  by the deterministic provider; callers passing ``require_external=True``
  get ProviderUnavailableError instead.
  """
  settings: ProviderSettings = field(default_factory=ProviderSettings)
  builders: Dict[str, Callable[[ProviderSettings], ProviderBuildResult]] = field(
      default_factory=lambda: dict(DEFAULT_BUILDERS))
  _providers: Dict[str, SchedulingProvider] = field(default_factory=dict, init=False)
  _errors: Dict[str, str] = field(default_factory=dict, init=False)
  _lock: Lock = field(default_factory=Lock, init=False)

  def _deterministic(self) -> SchedulingProvider:
    provider = self._providers.get("mock")
    if provider is None:
      provider = self.builders["mock"](self.settings).provider or DeterministicProvider()
      self._providers["mock"] = provider
    return provider

  def get(self, kind: Optional[str] = None, *, require_external: bool = False) -> SchedulingProvider:
    kind = (kind or self.settings.kind or "mock").strip().lower()
    if kind == "deterministic":
      kind = "mock"
    with self._lock:
      provider = self._providers.get(kind)
      if provider is None:
        builder = self.builders.get(kind)
        if builder is None:
          result = ProviderBuildResult(kind, error=f"Unsupported provider {kind!r}")
        else:
          result = builder(self.settings)
        if result.ok:
          provider = result.provider
          logger.info("AI provider %s initialised", kind)
        else:
          logger.warning("AI provider %s unavailable (%s), falling back to deterministic", kind, result.error)
          self._errors[kind] = result.error or "unknown error"
          provider = self._deterministic()
        self._providers[kind] = provider

    if require_external and kind != "mock" and not provider.external:
      raise ProviderUnavailableError(f"AI provider {kind} is unavailable: {self._errors.get(kind)}")
    return provider

  def info(self) -> Dict[str, Any]:
    errors = self.settings.validate()
    return {
        "type": self.settings.kind,
        "enabled": self.settings.enabled,
        "configured": not errors,
        "errors": errors,
        "active": self.get().name,
    }
