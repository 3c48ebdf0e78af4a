from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from .config import LLM_DEBUG

try:
  from google import genai  # type: ignore
  from google.genai import types as genai_types  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
  genai = None  # type: ignore
  genai_types = None  # type: ignore

T = TypeVar("T", bound=BaseModel)

# -------------------------
# LLM prompts
# -------------------------
INTENT_EXTRACTION_PROMPT = """You turn one calendar scheduling request into JSON. Return exactly one JSON object, no explanation.
Input format:
{
  "request": string,
  "now": "YYYY-MM-DDTHH:MM" (the user's local time),
  "timezone": IANA name
}

Output schema:
{
  "title": string,
  "description": string | null,
  "start_date": "YYYY-MM-DDTHH:MM" | null,
  "end_date": "YYYY-MM-DDTHH:MM" | null,
  "duration": integer minutes | null,
  "attendees": [string],
  "location": string | null,
  "priority": "low" | "medium" | "high",
  "recurrence": {"frequency": "daily" | "weekly" | "monthly", "interval": integer, "days_of_week": [0-6]} | null,
  "constraints": {"not_before": "HH:MM" | null, "not_after": "HH:MM" | null, "preferred_days": [0-6], "avoid_days": [0-6]} | null,
  "is_flexible": boolean,
  "is_immutable": boolean
}

Rules:
1. Resolve relative dates ("tomorrow", "next Friday") against "now". Times are the user's local time.
2. Weekdays are numbered 0 = Monday ... 6 = Sunday.
3. Leave start_date null when the request names no date or time. Never invent one.
4. "urgent" or "important" means high priority; "optional" or "low priority" means low.
5. "flexible" or "whenever" means is_flexible true; "must be" or "cannot move" means is_immutable true.
6. The title is a short noun phrase without date or time words.
"""

CLARIFICATION_PROMPT = """You help a user finish a calendar scheduling request.
Input format:
{
  "request": string,
  "missing": [string]  (e.g. "start_time", "title", "duration", "attendees")
}
Ask ONE short, friendly question that asks for the missing information. Return only the question.
"""


def build_openai_client(api_key: str) -> AsyncOpenAI:
  return AsyncOpenAI(api_key=api_key)


def build_gemini_client(api_key: str) -> Any:
  if genai is None:
    raise RuntimeError("google-genai is not installed")
  return genai.Client(api_key=api_key)


# -------------------------
# Output helpers
# -------------------------
def _print_raw_output(*, kind: str, provider: str, model: str, raw_output: str) -> None:
  if not LLM_DEBUG:
    return
  print(f"[LLM RAW] kind={kind} provider={provider} model={model}", flush=True)
  print(raw_output if raw_output else "(empty)", flush=True)
  print("[LLM RAW END]", flush=True)


def _extract_message_text(content: Any) -> str:
  if isinstance(content, str):
    return content.strip()
  if isinstance(content, list):
    chunks = []
    for item in content:
      if isinstance(item, dict):
        text_val = item.get("text")
        if isinstance(text_val, str) and text_val.strip():
          chunks.append(text_val.strip())
      elif isinstance(item, str) and item.strip():
        chunks.append(item.strip())
    return " ".join(chunks).strip()
  return ""


def _gemini_text_from_response(response: Any) -> str:
  text = getattr(response, "text", None)
  if isinstance(text, str) and text.strip():
    return text.strip()
  candidates = getattr(response, "candidates", None)
  if not isinstance(candidates, list):
    return ""
  chunks = []
  for candidate in candidates:
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not isinstance(parts, list):
      continue
    for part in parts:
      text_val = getattr(part, "text", None)
      if isinstance(text_val, str) and text_val.strip():
        chunks.append(text_val.strip())
  return " ".join(chunks).strip()


def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned).strip()
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
  return cleaned


def validate_structured_response(response_model: Type[T], raw_output: str) -> Optional[T]:
  """Best-effort parse of model output into ``response_model``; None if hopeless."""
  if not raw_output:
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  left = cleaned.find("{")
  right = cleaned.rfind("}")
  if left != -1 and right > left:
    candidates.append(cleaned[left:right + 1])
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      return response_model.model_validate_json(text)
    except ValueError:
      continue
  return None


def _compose_prompt(system_prompt: str, user_content: str) -> str:
  return f"{system_prompt}\n\nUser:\n{user_content}"


def _compose_openai_messages(system_prompt: str, user_content: str, json_mode: bool) -> List[Dict[str, str]]:
  instruction = system_prompt
  # JSON mode requires the word "json" somewhere in the messages
  if json_mode and "json" not in instruction.lower():
    instruction += "\n\nResponse must be a valid JSON object."
  return [
      {"role": "system", "content": instruction},
      {"role": "user", "content": user_content},
  ]


def _canonical_gemini_model(model: str) -> str:
  model_name = str(model or "").strip()
  if not model_name:
    return "models/gemini-flash-latest"
  if model_name.startswith("models/"):
    return model_name
  return f"models/{model_name}"


def _gemini_config(*, json_mode: bool, temperature: float, max_tokens: int) -> Any:
  config: Dict[str, Any] = {"temperature": temperature}
  if json_mode:
    config["response_mime_type"] = "application/json"
  if max_tokens > 0:
    config["max_output_tokens"] = max_tokens
  if genai_types is not None:
    return genai_types.GenerateContentConfig(**config)
  return config


# -------------------------
# OpenAI
# -------------------------
async def openai_structured_completion(client: AsyncOpenAI,
                                       *,
                                       model: str,
                                       system_prompt: str,
                                       user_payload: Dict[str, Any],
                                       response_model: Type[T],
                                       temperature: float = 0.3,
                                       max_tokens: int = 500) -> Tuple[Optional[T], str]:
  messages = _compose_openai_messages(system_prompt,
                                      json.dumps(user_payload, ensure_ascii=False),
                                      json_mode=True)
  completion = await client.chat.completions.create(
      model=model,
      messages=messages,
      response_format={"type": "json_object"},
      temperature=temperature,
      max_tokens=max_tokens,
  )
  raw_output = _extract_message_text(completion.choices[0].message.content)
  _print_raw_output(kind="structured", provider="openai", model=model, raw_output=raw_output)
  return validate_structured_response(response_model, raw_output), raw_output


async def openai_text_completion(client: AsyncOpenAI,
                                 *,
                                 model: str,
                                 system_prompt: str,
                                 user_payload: Dict[str, Any],
                                 temperature: float = 0.7,
                                 max_tokens: int = 100) -> str:
  messages = _compose_openai_messages(system_prompt,
                                      json.dumps(user_payload, ensure_ascii=False),
                                      json_mode=False)
  completion = await client.chat.completions.create(
      model=model,
      messages=messages,
      temperature=temperature,
      max_tokens=max_tokens,
  )
  text = _extract_message_text(completion.choices[0].message.content)
  _print_raw_output(kind="text", provider="openai", model=model, raw_output=text)
  return text


# -------------------------
# Gemini
# -------------------------
def _gemini_generate_sync(client: Any, model: str, prompt: str, config: Any) -> str:
  response = client.models.generate_content(
      model=_canonical_gemini_model(model),
      contents=prompt,
      config=config,
  )
  return _gemini_text_from_response(response)


async def gemini_structured_completion(client: Any,
                                       *,
                                       model: str,
                                       system_prompt: str,
                                       user_payload: Dict[str, Any],
                                       response_model: Type[T],
                                       temperature: float = 0.3,
                                       max_tokens: int = 500) -> Tuple[Optional[T], str]:
  prompt = _compose_prompt(system_prompt, json.dumps(user_payload, ensure_ascii=False))
  config = _gemini_config(json_mode=True, temperature=temperature, max_tokens=max_tokens)
  raw_output = await asyncio.to_thread(_gemini_generate_sync, client, model, prompt, config)
  _print_raw_output(kind="structured", provider="gemini", model=model, raw_output=raw_output)
  return validate_structured_response(response_model, raw_output), raw_output


async def gemini_text_completion(client: Any,
                                 *,
                                 model: str,
                                 system_prompt: str,
                                 user_payload: Dict[str, Any],
                                 temperature: float = 0.7,
                                 max_tokens: int = 100) -> str:
  prompt = _compose_prompt(system_prompt, json.dumps(user_payload, ensure_ascii=False))
  config = _gemini_config(json_mode=False, temperature=temperature, max_tokens=max_tokens)
  text = await asyncio.to_thread(_gemini_generate_sync, client, model, prompt, config)
  _print_raw_output(kind="text", provider="gemini", model=model, raw_output=text)
  return text
