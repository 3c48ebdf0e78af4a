from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
#  Intent extraction output (LLM)
# ---------------------------------------------------------------------------

class RecurrenceOutput(BaseModel):
  model_config = ConfigDict(extra="ignore")

  frequency: Literal["daily", "weekly", "monthly"]
  interval: int = Field(default=1, ge=1)
  days_of_week: List[int] = Field(default_factory=list)
  end_date: Optional[str] = None
  count: Optional[int] = None


class ConstraintsOutput(BaseModel):
  model_config = ConfigDict(extra="ignore")

  not_before: Optional[str] = None
  not_after: Optional[str] = None
  preferred_days: List[int] = Field(default_factory=list)
  avoid_days: List[int] = Field(default_factory=list)


class IntentExtractionOutput(BaseModel):
  """What the model is asked to return for a scheduling request."""
  model_config = ConfigDict(extra="ignore")

  title: Optional[str] = None
  description: Optional[str] = None
  start_date: Optional[str] = None  # ISO-8601, local time of the user
  end_date: Optional[str] = None
  duration: Optional[int] = None
  attendees: List[str] = Field(default_factory=list)
  location: Optional[str] = None
  priority: Optional[Literal["low", "medium", "high"]] = None
  recurrence: Optional[RecurrenceOutput] = None
  constraints: Optional[ConstraintsOutput] = None
  is_flexible: Optional[bool] = None
  is_immutable: Optional[bool] = None
