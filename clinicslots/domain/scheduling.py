"""
Core scheduling logic: slot generation, buffer-aware conflict detection and
buffer resolution.

Pure domain logic without any external dependencies (no database, no I/O,
no environment access). Everything here is safe to call concurrently.

The conflict check is a best-effort pre-filter. Under concurrent bookings the
storage layer's commit-time guard is the source of truth, see
``adapters.memory_store.InMemoryBookingStore.insert_booking``.
"""

import logging
import math
from datetime import timedelta
from typing import Iterable, List, Optional, Union

from pendulum import DateTime

from .exceptions import InvalidDurationError
from .models import BookedSlot, Professional, Specialty, TimeRange, WorkingHours

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_MINUTES = 10

BUFFER_ENV_VAR = "APPOINTMENT_BUFFER_MINUTES"

Number = Union[int, float]


def resolve_buffer_minutes(raw: Optional[str]) -> float:
    """
    Resolve the buffer between appointments from an environment-style value.

    Missing, blank, non-numeric, non-finite and negative values fall back to
    ``DEFAULT_BUFFER_MINUTES``. Never raises.
    """
    if raw is None:
        return float(DEFAULT_BUFFER_MINUTES)

    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        return float(DEFAULT_BUFFER_MINUTES)

    if math.isfinite(value) and value >= 0:
        return value
    return float(DEFAULT_BUFFER_MINUTES)


def _validate_duration(duration_minutes: Number) -> None:
    if (
        isinstance(duration_minutes, bool)
        or not isinstance(duration_minutes, (int, float))
        or not math.isfinite(duration_minutes)
        or duration_minutes <= 0
    ):
        raise InvalidDurationError(
            f"Slot duration must be a positive number of minutes, got {duration_minutes!r}"
        )


def generate_slots(
    window_start: Optional[DateTime],
    window_end: Optional[DateTime],
    duration_minutes: Number,
    buffer_minutes: Number
) -> List[TimeRange]:
    """
    Enumerate fixed-length candidate slots inside a working window.

    Example (duration 20, buffer 10):
    Window: 09:00 - 10:00
    Result: [09:00-09:20, 09:30-09:50]

    Args:
        window_start: Start of the working window
        window_end: End of the working window
        duration_minutes: Length of every slot, must be positive
        buffer_minutes: Idle gap between consecutive slots, negatives clamp to 0

    Returns:
        Slots in increasing order; empty for a missing, empty or inverted window

    Raises:
        InvalidDurationError: If duration_minutes is not a positive number
    """
    _validate_duration(duration_minutes)

    if window_start is None or window_end is None or window_start >= window_end:
        return []

    slots: List[TimeRange] = []
    duration = timedelta(minutes=duration_minutes)
    buffer = timedelta(minutes=max(0, buffer_minutes))
    cursor = window_start

    while cursor < window_end:
        slot_end = cursor + duration
        if slot_end > window_end:
            break
        slots.append(TimeRange(start=cursor, end=slot_end))
        cursor = slot_end + buffer

    return slots


SlotLike = Union[TimeRange, BookedSlot]


def has_conflict(
    candidate: TimeRange,
    booked_slots: Iterable[SlotLike],
    buffer_minutes: Number
) -> bool:
    """
    Check whether a candidate collides with booked slots once buffered.

    The candidate is widened to [start - buffer, end + buffer) and compared
    against each booked interval as-is.

    A buffer of zero or less disables the check entirely and reports no
    conflict, even for exact overlaps. Exact-overlap protection in that case
    is left to the storage layer.
    """
    if buffer_minutes <= 0:
        logger.debug("Buffer is %s; skipping conflict check for %s", buffer_minutes, candidate)
        return False

    expanded = candidate.widened(timedelta(minutes=buffer_minutes))
    return any(expanded.overlaps(slot) for slot in booked_slots)


def resolve_duration_minutes(
    requested: Optional[Number] = None,
    professional: Optional[Professional] = None,
    specialty: Optional[Specialty] = None
) -> Number:
    """
    Pick the slot length for a booking request.

    Order: explicit request, the professional's own setting, the specialty
    default.

    Raises:
        InvalidDurationError: If no source provides a positive duration
    """
    candidates = [
        requested,
        professional.slot_duration_minutes if professional else None,
        specialty.default_slot_duration_minutes if specialty else None,
    ]
    duration = next((value for value in candidates if value is not None), None)

    if duration is None:
        raise InvalidDurationError("No slot duration configured")

    _validate_duration(duration)
    return duration


class SlotScheduler:
    """
    Computes bookable slots for a professional under a fixed buffer.

    Algorithm:
    1. Build the working window(s) for the requested period
    2. Split each window into duration-long slots separated by the buffer
    3. Drop slots that collide with booked slots once buffered
    """

    def __init__(self, buffer_minutes: Number = DEFAULT_BUFFER_MINUTES):
        self.buffer_minutes = max(0, buffer_minutes)

    def generate(
        self,
        window_start: DateTime,
        window_end: DateTime,
        duration_minutes: Number
    ) -> List[TimeRange]:
        """Generate candidate slots for one window."""
        return generate_slots(window_start, window_end, duration_minutes, self.buffer_minutes)

    def conflicts(self, candidate: TimeRange, booked_slots: Iterable[SlotLike]) -> bool:
        """Check a candidate against booked slots."""
        return has_conflict(candidate, booked_slots, self.buffer_minutes)

    def available_slots(
        self,
        window_start: DateTime,
        window_end: DateTime,
        duration_minutes: Number,
        booked_slots: Iterable[SlotLike]
    ) -> List[TimeRange]:
        """
        Generate slots for a window and filter out the ones that conflict.

        Returns:
            Conflict-free candidate slots in chronological order
        """
        candidates = self.generate(window_start, window_end, duration_minutes)
        if not candidates:
            return []

        booked = list(booked_slots)
        return [slot for slot in candidates if not self.conflicts(slot, booked)]

    def working_windows(
        self,
        start_date: DateTime,
        end_date: DateTime,
        working_hours: WorkingHours
    ) -> List[TimeRange]:
        """
        Generate all working hour blocks within the date range.

        Returns a list of TimeRange objects, one for each working day,
        clipped to the requested range.
        """
        blocks: List[TimeRange] = []
        current = start_date.start_of("day")

        while current <= end_date:
            hours = working_hours.get_working_hours_for_day(current)

            if hours:
                clipped = self._clip_range_to_bounds(hours, start_date, end_date)
                if clipped:
                    blocks.append(clipped)

            current = current.add(days=1)

        return blocks

    @staticmethod
    def _clip_range_to_bounds(
        time_range: TimeRange,
        min_bound: DateTime,
        max_bound: DateTime
    ) -> TimeRange | None:
        """
        Clip a time range to fit within bounds.
        Returns None if the range is completely outside bounds.
        """
        if time_range.end <= min_bound or time_range.start >= max_bound:
            return None

        return TimeRange(
            start=max(time_range.start, min_bound),
            end=min(time_range.end, max_bound)
        )
