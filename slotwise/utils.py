from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional, Tuple
import math
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import LLM_DEBUG, DEFAULT_TIMEZONE, HHMM_RE
from .errors import ValidationError


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = re.sub(r"\s+", " ", t)
    return t


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    if isinstance(name, str) and name.strip():
        try:
            return ZoneInfo(name.strip())
        except (ZoneInfoNotFoundError, ValueError):
            _log_debug(f"[TZ] unknown timezone {name!r}, using default")
    return DEFAULT_TIMEZONE


def ensure_aware(value: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Attach ``tz`` (default timezone when omitted) to naive datetimes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz or DEFAULT_TIMEZONE)
    return value


def now(tz: Optional[ZoneInfo] = None) -> datetime:
    return datetime.now(tz or DEFAULT_TIMEZONE)


def parse_hhmm(value: str) -> Tuple[int, int]:
    m = HHMM_RE.match((value or "").strip())
    if not m:
        raise ValidationError(f"Invalid time of day {value!r}, expected HH:MM")
    return int(m.group(1)), int(m.group(2))


def hhmm_to_minutes(value: str) -> int:
    hour, minute = parse_hhmm(value)
    return hour * 60 + minute


def minutes_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def at_minutes(day: datetime, minutes: int) -> datetime:
    """Same calendar day as ``day`` at ``minutes`` past midnight."""
    return day.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)


def next_day_at(day: datetime, minutes: int) -> datetime:
    return at_minutes(day + timedelta(days=1), minutes)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # half-open intervals: touching endpoints do not overlap
    return start_a < end_b and end_a > start_b


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def parse_iso_datetime(value: Any, tz: Optional[ZoneInfo] = None) -> Optional[datetime]:
    if isinstance(value, datetime):
        return ensure_aware(value, tz)
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return ensure_aware(parsed, tz)
