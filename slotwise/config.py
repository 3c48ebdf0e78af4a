from __future__ import annotations

import os
import pathlib
import re
from typing import Optional
from zoneinfo import ZoneInfo


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


API_BASE = os.getenv("API_BASE", "/api")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"

HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

# -------------------------
# LLM provider
# -------------------------
AI_PROVIDER = os.getenv("AI_PROVIDER", "mock").strip().lower()
AI_FEATURES_ENABLED = _env_flag("AI_FEATURES_ENABLED")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
LLM_RETRY_INITIAL_DELAY_MS = int(os.getenv("LLM_RETRY_INITIAL_DELAY_MS", "1000"))
SUPPORTED_PROVIDERS = ("openai", "gemini", "mock")

# -------------------------
# Calendar defaults
# -------------------------
DEFAULT_TIMEZONE_NAME = os.getenv("DEFAULT_TIMEZONE", "UTC")
DEFAULT_TIMEZONE = ZoneInfo(DEFAULT_TIMEZONE_NAME)
WORKING_HOURS_START = os.getenv("WORKING_HOURS_START", "09:00")
WORKING_HOURS_END = os.getenv("WORKING_HOURS_END", "17:00")
MIN_EVENT_BUFFER_MINUTES = int(os.getenv("MIN_EVENT_BUFFER_MINUTES", "15"))
SEARCH_WINDOW_DAYS = int(os.getenv("SEARCH_WINDOW_DAYS", "7"))

_events_file = os.getenv("EVENTS_DATA_FILE", "").strip()
EVENTS_DATA_FILE: Optional[pathlib.Path] = pathlib.Path(_events_file) if _events_file else None

# -------------------------
# Engine limits
# -------------------------
SLOT_STEP_MINUTES = 30
DEFAULT_DURATION_MINUTES = 60
MAX_CANDIDATE_ITERATIONS = 1000
MOVE_BUFFER_MINUTES = 15
MIN_SUGGESTION_SCORE = 40
MAX_SUGGESTIONS = 10
DETERMINISTIC_MAX_SUGGESTIONS = 5
DETERMINISTIC_SCAN_LIMIT = 10
DETERMINISTIC_CONFIDENCE = 0.8
LLM_PARSE_CONFIDENCE = 0.9

SCORE_WEIGHTS = {
    "availability": 0.35,
    "preference_match": 0.25,
    "attendee_availability": 0.20,
    "minimal_disruption": 0.10,
    "buffer": 0.10,
}
PRIORITY_OVERLAP_WEIGHTS = {"low": 0.75, "medium": 1.0, "high": 1.5}
