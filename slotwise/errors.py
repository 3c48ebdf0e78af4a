from __future__ import annotations

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling engine."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Request payload is missing a required piece or is malformed."""

    status_code = 400


class AIDisabledError(SchedulingError):
    status_code = 403


class ProviderUnavailableError(SchedulingError):
    """An external language-model provider was required but could not be built."""

    status_code = 503


class RateLimitedError(SchedulingError):
    """Provider kept answering with rate-limit errors after all retries."""

    status_code = 429


class ProviderTimeoutError(SchedulingError):
    status_code = 504


class PartialCommitError(SchedulingError):
    """
    Commit failed after some event moves were already written.

    Carries which moves were applied, which of those were reverted again,
    and which could not be reverted and are still in their moved position.
    """

    status_code = 500

    def __init__(self,
                 message: str,
                 *,
                 stage: str,
                 applied: Optional[List[str]] = None,
                 reverted: Optional[List[str]] = None,
                 unreverted: Optional[List[str]] = None):
        super().__init__(message)
        self.stage = stage
        self.applied = list(applied or [])
        self.reverted = list(reverted or [])
        self.unreverted = list(unreverted or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "stage": self.stage,
            "applied_moves": self.applied,
            "reverted_moves": self.reverted,
            "unreverted_moves": self.unreverted,
        }
