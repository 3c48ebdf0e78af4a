from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

import dateparser

from ..config import DEFAULT_DURATION_MINUTES, DETERMINISTIC_CONFIDENCE
from ..models import Constraints, ParsedIntent, Recurrence
from ..utils import _log_debug, ensure_aware, normalize_text, now

Clock = Tuple[int, int]

# -------------------------
# Vocabulary
# -------------------------
WEEKDAY_NAMES: Dict[str, int] = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}
_WEEKDAY_ALT = "|".join(sorted(WEEKDAY_NAMES, key=len, reverse=True))
_WEEKDAY_RE = re.compile(rf"\b({_WEEKDAY_ALT})s?\b", re.I)
_WEEKDAY_GROUP_RE = re.compile(r"\b(weekdays?|weekends?)\b", re.I)

_MONTH = (r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
          r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?")
_MONTH_WORDS = {
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
}
_TEMPORAL_WORDS = {"today", "tonight", "tomorrow", "next", "this", "every", "noon", "midnight"}

TITLE_RE = re.compile(r"^([^,]+?)(?:\s+(?:at|on|tomorrow|next|every|for)\b|\s*,|\s*$)", re.I)

# -------------------------
# Date / time patterns
# -------------------------
_ISO_DATETIME_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})[T ](\d{2}):(\d{2})")
_ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_MONTH_DATE_RE = re.compile(
    rf"\b({_MONTH}\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTH}(?:,?\s+\d{{4}})?)\b", re.I)
_RELATIVE_DAY_RE = re.compile(r"\b(day after tomorrow|tomorrow|today|tonight|next week|next month)\b", re.I)
_WEEKDAY_DATE_RE = re.compile(rf"\b(?:(next|this|on|coming)\s+)?({_WEEKDAY_ALT})\b", re.I)

_MERIDIEM = r"(am|pm|a\.m\.|p\.m\.)"
_RANGE_PREFIXED_RE = re.compile(
    rf"\b(?:from|between)\s+(\d{{1,2}})(?::(\d{{2}}))?\s*{_MERIDIEM}?"
    rf"\s*(?:-|–|to|until|till|and)\s*(\d{{1,2}})(?::(\d{{2}}))?\s*{_MERIDIEM}?(?![a-z])", re.I)
_RANGE_MERIDIEM_RE = re.compile(
    rf"\b(\d{{1,2}})(?::(\d{{2}}))?\s*{_MERIDIEM}?\s*(?:-|–|to|until|till)\s*"
    rf"(\d{{1,2}})(?::(\d{{2}}))?\s*{_MERIDIEM}(?![a-z])", re.I)
_RANGE_24H_RE = re.compile(r"\b(\d{1,2}):(\d{2})\s*(?:-|–|to|until|till)\s*(\d{1,2}):(\d{2})\b")
_TIME_MERIDIEM_RE = re.compile(rf"\b(\d{{1,2}})(?::(\d{{2}}))?\s*{_MERIDIEM}(?![a-z])", re.I)
_TIME_24H_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_TIME_WORD_RE = re.compile(r"\b(noon|midday|midnight)\b", re.I)
_TIME_BARE_AT_RE = re.compile(
    r"\bat\s+(\d{1,2})\b(?![:\d]|\s*(?:%|am\b|pm\b|a\.m\.|p\.m\.|hours?\b|hrs?\b|minutes?\b|mins?\b|people\b))", re.I)

_TIME_TOKEN = r"(\d{1,2}(?::\d{2})?\s*(?:am|pm|a\.m\.|p\.m\.)?|noon|midnight)"
_NOT_BEFORE_RE = re.compile(rf"\b(?:not\s+before|no\s+earlier\s+than)\s+{_TIME_TOKEN}", re.I)
_NOT_AFTER_RE = re.compile(rf"\b(?:not\s+after|no\s+later\s+than)\s+{_TIME_TOKEN}", re.I)
_BEFORE_RE = re.compile(rf"\bbefore\s+{_TIME_TOKEN}", re.I)
_AFTER_RE = re.compile(rf"\bafter\s+{_TIME_TOKEN}", re.I)

_HOURS_RE = re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)\b", re.I)
_MINUTES_RE = re.compile(r"\b(\d+)\s*(?:minutes?|mins?|m)\b", re.I)
_HALF_HOUR_RE = re.compile(r"\bhalf\s+an?\s+hour\b", re.I)
_AN_HOUR_RE = re.compile(r"\b(?:an|one)\s+hour\b", re.I)

# -------------------------
# Other fields
# -------------------------
_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
_NAME_SEQ = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*"
_WITH_NAMES_RE = re.compile(rf"\bwith\s+({_NAME_SEQ}(?:\s*(?:,|and)\s*{_NAME_SEQ})*)")
_LOCATION_RE = re.compile(r"\b(?:at|in)\s+((?:the\s+)?[A-Z][\w'-]*(?:\s+[A-Z0-9][\w'-]*)*)")
_DESCRIPTION_RE = re.compile(r"(?:\babout|\bregarding|\bre:)\s+(.+)", re.I)

_RECUR_EVERY_N_RE = re.compile(r"\bevery\s+(\d+|other|second)\s+(day|week|month)s?\b", re.I)
_RECUR_DAILY_RE = re.compile(r"\b(?:every\s+day|daily)\b", re.I)
_RECUR_WEEKLY_RE = re.compile(r"\b(?:every\s+week|weekly)\b", re.I)
_RECUR_MONTHLY_RE = re.compile(r"\b(?:every\s+month|monthly)\b", re.I)
_RECUR_EVERY_WEEKDAY_RE = re.compile(rf"\bevery\s+(?:{_WEEKDAY_ALT}|weekday|weekend)", re.I)
_RECUR_COUNT_RE = re.compile(r"\b(\d+)\s+times\b", re.I)

_LOW_PRIORITY_RE = re.compile(r"\b(?:low\s+priority|optional|not\s+urgent)\b", re.I)
_HIGH_PRIORITY_RE = re.compile(r"\b(?:urgent|important|high\s+priority|asap)\b", re.I)
_FLEXIBLE_RE = re.compile(r"\b(?:flexible|whenever|any\s*time)\b", re.I)
_IMMUTABLE_RE = re.compile(r"\b(?:must\s+be|cannot\s+move|can't\s+move|fixed\s+time)\b", re.I)


# -------------------------
# Clock helpers
# -------------------------
def _apply_meridiem(hour: int, meridiem: Optional[str]) -> int:
  if not meridiem:
    return hour
  m = meridiem.lower().replace(".", "")
  if m == "am":
    return 0 if hour == 12 else hour
  return hour if hour == 12 else hour + 12


def _bare_hour(hour: int) -> int:
  # "at 3" almost always means the afternoon
  return hour + 12 if 1 <= hour <= 7 else hour


def _valid_clock(hour: int, minute: int) -> Optional[Clock]:
  if 0 <= hour <= 23 and 0 <= minute <= 59:
    return hour, minute
  return None


def normalize_clock(token: str) -> Optional[str]:
  """'10am' -> '10:00', '5:30 pm' -> '17:30', 'noon' -> '12:00'."""
  raw = (token or "").strip().lower()
  if raw in ("noon", "midday"):
    return "12:00"
  if raw == "midnight":
    return "00:00"
  m = re.match(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?$", raw)
  if not m:
    return None
  hour = _apply_meridiem(int(m.group(1)), m.group(3))
  clock = _valid_clock(hour, int(m.group(2) or 0))
  if clock is None:
    return None
  return f"{clock[0]:02d}:{clock[1]:02d}"


def _limit_clock(token: str) -> Optional[str]:
  raw = (token or "").strip()
  if raw.isdigit():
    clock = _valid_clock(_bare_hour(int(raw)), 0)
    return f"{clock[0]:02d}:{clock[1]:02d}" if clock else None
  return normalize_clock(raw)


# -------------------------
# Constraints
# -------------------------
def extract_constraints(text: str) -> Tuple[Dict[str, Optional[str]], str]:
  """
  Pull not-before / not-after limits out of the text.

  Returns the limits plus the text with those phrases removed so that
  clock-time detection does not read them as the event start.
  """
  limits: Dict[str, Optional[str]] = {"not_before": None, "not_after": None}
  remaining = text

  for key, pattern in (("not_before", _NOT_BEFORE_RE), ("not_after", _NOT_AFTER_RE)):
    m = pattern.search(remaining)
    if m:
      limits[key] = _limit_clock(m.group(1))
      remaining = remaining[:m.start()] + " " + remaining[m.end():]

  m = _BEFORE_RE.search(remaining)
  if m:
    if limits["not_after"] is None:
      limits["not_after"] = _limit_clock(m.group(1))
    remaining = remaining[:m.start()] + " " + remaining[m.end():]

  m = _AFTER_RE.search(remaining)
  if m:
    if limits["not_before"] is None:
      limits["not_before"] = _limit_clock(m.group(1))
    remaining = remaining[:m.start()] + " " + remaining[m.end():]

  return limits, normalize_text(remaining)


def detect_weekdays(text: str) -> List[int]:
  days = set()
  for m in _WEEKDAY_RE.finditer(text):
    days.add(WEEKDAY_NAMES[m.group(1).lower()])
  for m in _WEEKDAY_GROUP_RE.finditer(text):
    if m.group(1).lower().startswith("weekday"):
      days.update(range(0, 5))
    else:
      days.update((5, 6))
  return sorted(days)


# -------------------------
# Dates
# -------------------------
def _add_month(day: date) -> date:
  year = day.year + (1 if day.month == 12 else 0)
  month = 1 if day.month == 12 else day.month + 1
  for candidate_day in (day.day, 30, 29, 28):
    try:
      return date(year, month, candidate_day)
    except ValueError:
      continue
  return date(year, month, 28)


def _resolve_day(text: str, reference: datetime) -> Optional[date]:
  m = _ISO_DATE_RE.search(text)
  if m:
    try:
      return date.fromisoformat(m.group(1))
    except ValueError:
      pass

  m = _MONTH_DATE_RE.search(text)
  if m:
    parsed = dateparser.parse(m.group(1), settings={
        "RELATIVE_BASE": reference.replace(tzinfo=None),
        "PREFER_DATES_FROM": "future",
    })
    if parsed is not None:
      return parsed.date()
    _log_debug(f"[INTENT] dateparser could not read {m.group(1)!r}")

  today = reference.date()
  m = _RELATIVE_DAY_RE.search(text)
  if m:
    word = m.group(1).lower()
    if word == "day after tomorrow":
      return today + timedelta(days=2)
    if word == "tomorrow":
      return today + timedelta(days=1)
    if word == "next week":
      return today + timedelta(days=7)
    if word == "next month":
      return _add_month(today)
    return today

  m = _WEEKDAY_DATE_RE.search(text)
  if m:
    target = WEEKDAY_NAMES[m.group(2).lower()]
    ahead = (target - today.weekday()) % 7
    if ahead == 0 and (m.group(1) or "").lower() == "next":
      ahead = 7
    return today + timedelta(days=ahead)
  return None


def _range_clocks(h1: str, m1: Optional[str], mer1: Optional[str],
                  h2: str, m2: Optional[str], mer2: Optional[str]) -> Optional[Tuple[Clock, Clock]]:
  hour1, hour2 = int(h1), int(h2)
  min1, min2 = int(m1 or 0), int(m2 or 0)
  if not mer1 and not mer2:
    if m1 is None and m2 is None:
      hour1, hour2 = _bare_hour(hour1), _bare_hour(hour2)
  else:
    end_hour = _apply_meridiem(hour2, mer2 or mer1)
    start_hour = _apply_meridiem(hour1, mer1 or mer2)
    # "11-1pm" starts in the morning
    if not mer1 and start_hour * 60 + min1 > end_hour * 60 + min2:
      start_hour = _apply_meridiem(hour1, "am")
    hour1, hour2 = start_hour, end_hour
  start = _valid_clock(hour1, min1)
  end = _valid_clock(hour2, min2)
  if start is None or end is None:
    return None
  return start, end


def parse_clock_range(text: str) -> Tuple[Optional[Clock], Optional[Clock]]:
  """Start and optional end clock time found in ``text``."""
  m = _RANGE_PREFIXED_RE.search(text) or _RANGE_MERIDIEM_RE.search(text)
  if m:
    clocks = _range_clocks(*m.groups())
    if clocks:
      return clocks
  m = _RANGE_24H_RE.search(text)
  if m:
    start = _valid_clock(int(m.group(1)), int(m.group(2)))
    end = _valid_clock(int(m.group(3)), int(m.group(4)))
    if start and end:
      return start, end

  found: List[Tuple[int, Clock]] = []
  m = _TIME_MERIDIEM_RE.search(text)
  if m:
    clock = _valid_clock(_apply_meridiem(int(m.group(1)), m.group(3)), int(m.group(2) or 0))
    if clock:
      found.append((m.start(), clock))
  m = _TIME_24H_RE.search(text)
  if m:
    found.append((m.start(), (int(m.group(1)), int(m.group(2)))))
  m = _TIME_WORD_RE.search(text)
  if m:
    found.append((m.start(), (0, 0) if m.group(1).lower() == "midnight" else (12, 0)))
  m = _TIME_BARE_AT_RE.search(text)
  if m:
    clock = _valid_clock(_bare_hour(int(m.group(1))), 0)
    if clock:
      found.append((m.start(), clock))
  if not found:
    return None, None
  found.sort(key=lambda item: item[0])
  return found[0][1], None


def parse_duration_minutes(text: str) -> Optional[int]:
  remaining = text
  total = 0.0
  matched = False
  if _HALF_HOUR_RE.search(remaining):
    total += 30
    matched = True
    remaining = _HALF_HOUR_RE.sub(" ", remaining)
  if _AN_HOUR_RE.search(remaining):
    total += 60
    matched = True
    remaining = _AN_HOUR_RE.sub(" ", remaining)
  m = _HOURS_RE.search(remaining)
  if m:
    total += float(m.group(1)) * 60
    matched = True
  m = _MINUTES_RE.search(remaining)
  if m:
    total += int(m.group(1))
    matched = True
  if not matched or total <= 0:
    return None
  return int(round(total))


def extract_time_range(text: str, reference: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
  m = _ISO_DATETIME_RE.search(text)
  if m:
    try:
      day = date.fromisoformat(m.group(1))
      start = datetime.combine(day, time(int(m.group(2)), int(m.group(3))), tzinfo=reference.tzinfo)
      return start, None
    except ValueError:
      pass

  day = _resolve_day(text, reference)
  start_clock, end_clock = parse_clock_range(text)
  if day is None and start_clock is None:
    return None, None
  day = day or reference.date()
  # a date without a clock time means midday
  start_clock = start_clock or (12, 0)
  start = datetime.combine(day, time(*start_clock), tzinfo=reference.tzinfo)
  end = None
  if end_clock is not None:
    end = datetime.combine(day, time(*end_clock), tzinfo=reference.tzinfo)
    if end <= start:
      end += timedelta(days=1)
  return start, end


# -------------------------
# Other fields
# -------------------------
def extract_title(text: str) -> str:
  m = TITLE_RE.match(text)
  if m:
    title = m.group(1).strip()
  else:
    title = " ".join(text.split()[:5])
  return title.strip(" .,;:!?")


def _is_plausible_title(title: str) -> bool:
  words = [w for w in re.split(r"\s+", title.lower()) if w]
  if not words:
    return False
  return not all(w in _TEMPORAL_WORDS or w in WEEKDAY_NAMES for w in words)


def extract_attendees(text: str) -> List[str]:
  attendees: List[str] = []
  for email in _EMAIL_RE.findall(text):
    email = email.rstrip(".")
    if email not in attendees:
      attendees.append(email)
  for m in _WITH_NAMES_RE.finditer(text):
    for name in re.split(r"\s*(?:,|\band\b)\s*", m.group(1)):
      name = name.strip()
      if not name or name.lower() in WEEKDAY_NAMES or name.lower() in _MONTH_WORDS:
        continue
      if name not in attendees:
        attendees.append(name)
  return attendees


def extract_location(text: str) -> Optional[str]:
  for m in _LOCATION_RE.finditer(text):
    value = re.sub(r"^the\s+", "", m.group(1)).strip()
    first = value.split()[0].lower().rstrip(".") if value else ""
    if not first or first in WEEKDAY_NAMES or first in _MONTH_WORDS or first in _TEMPORAL_WORDS:
      continue
    return value
  return None


def extract_description(text: str) -> Optional[str]:
  m = _DESCRIPTION_RE.search(text)
  if not m:
    return None
  value = m.group(1).strip().rstrip(".")
  return value or None


def extract_recurrence(text: str, weekdays: List[int]) -> Optional[Recurrence]:
  count_m = _RECUR_COUNT_RE.search(text)
  count = int(count_m.group(1)) if count_m else None

  m = _RECUR_EVERY_N_RE.search(text)
  if m:
    raw = m.group(1).lower()
    interval = 2 if raw in ("other", "second") else max(1, int(raw))
    unit = m.group(2).lower()
    frequency = {"day": "daily", "week": "weekly", "month": "monthly"}[unit]
    days = weekdays if frequency == "weekly" else []
    return Recurrence(frequency=frequency, interval=interval, days_of_week=days, count=count)
  if _RECUR_DAILY_RE.search(text):
    return Recurrence(frequency="daily", interval=1, count=count)
  if _RECUR_WEEKLY_RE.search(text):
    return Recurrence(frequency="weekly", interval=1, days_of_week=weekdays, count=count)
  if _RECUR_MONTHLY_RE.search(text):
    return Recurrence(frequency="monthly", interval=1, count=count)
  if _RECUR_EVERY_WEEKDAY_RE.search(text) and weekdays:
    return Recurrence(frequency="weekly", interval=1, days_of_week=weekdays, count=count)
  return None


def extract_priority(text: str) -> str:
  if _LOW_PRIORITY_RE.search(text):
    return "low"
  if _HIGH_PRIORITY_RE.search(text):
    return "high"
  return "medium"


# -------------------------
# Entry point
# -------------------------
def extract_intent(text: str, reference_time: Optional[datetime] = None) -> ParsedIntent:
  """
  Rule-based reading of a scheduling request. Never raises.

  Unresolvable pieces are reported in ``ambiguities`` instead.
  """
  reference = ensure_aware(reference_time) if reference_time else now()
  cleaned = normalize_text(text)
  ambiguities: List[str] = []

  limits, time_text = extract_constraints(cleaned)
  start, end = extract_time_range(time_text, reference)
  explicit_duration = parse_duration_minutes(time_text)

  duration = DEFAULT_DURATION_MINUTES
  if start is not None and end is not None:
    duration = int((end - start).total_seconds() // 60)
  elif explicit_duration:
    duration = explicit_duration
    if start is not None:
      end = start + timedelta(minutes=duration)
  if start is None:
    ambiguities.append("start_time")

  title = extract_title(cleaned)
  if not _is_plausible_title(title):
    title = ""
    ambiguities.append("title")

  weekdays = detect_weekdays(cleaned)
  constraints = None
  if limits["not_before"] or limits["not_after"] or weekdays:
    constraints = Constraints(
        not_before=limits["not_before"],
        not_after=limits["not_after"],
        preferred_days=weekdays,
    )

  fields = {
      "title": title,
      "description": extract_description(cleaned),
      "start_date": start,
      "end_date": end,
      "duration": duration,
      "recurrence": extract_recurrence(cleaned, weekdays),
      "attendees": extract_attendees(cleaned),
      "location": extract_location(cleaned),
      "priority": extract_priority(cleaned),
      "constraints": constraints,
      "is_flexible": bool(_FLEXIBLE_RE.search(cleaned)),
      "is_immutable": bool(_IMMUTABLE_RE.search(cleaned)),
      "confidence": DETERMINISTIC_CONFIDENCE,
      "ambiguities": ambiguities,
  }
  _log_debug(f"[INTENT] {cleaned!r} -> start={start} end={end} duration={duration}")
  try:
    return ParsedIntent(**fields)
  except ValueError as exc:
    _log_debug(f"[INTENT] could not build intent: {exc}")
    return ParsedIntent(title=title,
                        confidence=DETERMINISTIC_CONFIDENCE,
                        ambiguities=sorted(set(ambiguities) | {"start_time"}))
