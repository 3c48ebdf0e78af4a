"""
Scheduling agent: intent extraction, slot search, scoring and commit
"""

from .conflict_manager import detect_conflicts, propose_moves
from .intent_extractor import extract_intent
from .llm_provider import ProviderRegistry, SchedulingProvider
from .orchestrator import build_scheduling_context, commit_slot, find_available_slots
from .scoring import score_slot
from .slot_generator import SlotGenerator, generate

__all__ = [
    "detect_conflicts",
    "propose_moves",
    "extract_intent",
    "ProviderRegistry",
    "SchedulingProvider",
    "build_scheduling_context",
    "commit_slot",
    "find_available_slots",
    "score_slot",
    "SlotGenerator",
    "generate",
]
