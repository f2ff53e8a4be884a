"""
Domain-specific exception hierarchy for the clinic slot scheduler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import TimeRange


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidDurationError(SchedulingError, ValueError):
    """Raised when a slot duration is missing, non-finite or not positive."""


class SlotConflictError(SchedulingError):
    """Raised when a candidate slot collides with an existing booking."""

    def __init__(self, candidate: "TimeRange", message: str | None = None):
        self.candidate = candidate
        super().__init__(message or f"Slot {candidate} conflicts with an existing booking")


class ProfessionalNotFoundError(SchedulingError, LookupError):
    """Raised when a professional id or name cannot be resolved."""


class SpecialtyNotFoundError(SchedulingError, LookupError):
    """Raised when a specialty id cannot be resolved."""
