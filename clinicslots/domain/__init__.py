"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .models import BookedSlot, Professional, Specialty, TimeRange, WorkingHours
from .scheduling import (
    DEFAULT_BUFFER_MINUTES,
    SlotScheduler,
    generate_slots,
    has_conflict,
    resolve_buffer_minutes,
    resolve_duration_minutes,
)

__all__ = [
    "BookedSlot",
    "Professional",
    "Specialty",
    "TimeRange",
    "WorkingHours",
    "DEFAULT_BUFFER_MINUTES",
    "SlotScheduler",
    "generate_slots",
    "has_conflict",
    "resolve_buffer_minutes",
    "resolve_duration_minutes",
]
