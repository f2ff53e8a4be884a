"""
Domain models for time ranges, bookings and the clinic's scheduling catalogue.
"""

from dataclasses import dataclass, field
from datetime import time, timedelta
from typing import List, Optional

from pendulum import DateTime


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange | BookedSlot") -> bool:
        """
        Check if this range overlaps with another (half-open intervals).

        Works with anything exposing start and end, so booked slots can be
        compared directly.
        """
        return self.start < other.end and self.end > other.start

    def widened(self, margin: timedelta) -> "TimeRange":
        """Return the range grown by margin on both sides."""
        return TimeRange(start=self.start - margin, end=self.end + margin)

    def contains(self, other: "TimeRange") -> bool:
        """Check if another range lies completely inside this one."""
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> dict:
        """Serialize to ISO 8601 strings."""
        return {
            "start": self.start.to_iso8601_string(),
            "end": self.end.to_iso8601_string(),
        }

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass
class WorkingHours:
    """
    Configuration for working hours.
    """
    start_time: time
    end_time: time
    exclude_weekdays: List[int]  # 0=Monday, 6=Sunday
    timezone: str = "America/Bogota"

    def is_working_day(self, dt: DateTime) -> bool:
        """Check if a given datetime falls on a working day in the clinic timezone."""
        return dt.in_timezone(self.timezone).day_of_week not in self.exclude_weekdays

    def get_working_hours_for_day(self, date: DateTime) -> TimeRange | None:
        """
        Get the working hours range for a specific day.
        Returns None if it's not a working day.

        The day is taken in the clinic timezone, whatever zone date carries.
        """
        if not self.is_working_day(date):
            return None

        date = date.in_timezone(self.timezone)

        start = date.set(
            hour=self.start_time.hour,
            minute=self.start_time.minute,
            second=0,
            microsecond=0
        )
        end = date.set(
            hour=self.end_time.hour,
            minute=self.end_time.minute,
            second=0,
            microsecond=0
        )

        return TimeRange(start=start, end=end)


@dataclass(frozen=True)
class Specialty:
    """A clinical specialty and the default length of its appointments."""
    id: str
    name: str
    default_slot_duration_minutes: int = 30


@dataclass(frozen=True)
class Professional:
    """A bookable professional; may override the specialty slot length."""
    id: str
    name: str
    specialty_id: str
    slot_duration_minutes: Optional[int] = None
    active: bool = True


@dataclass(frozen=True)
class BookedSlot:
    """
    A persisted, confirmed reservation owned by exactly one professional.

    Read-only from the scheduler's point of view; identity is assigned by
    the storage layer.
    """
    id: str
    professional_id: str
    time_range: TimeRange
    patient_id: Optional[str] = field(default=None, compare=False)

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Día, DD.MM.YYYY | HH:MM – HH:MM
        """
        return format_slot(self.time_range)


WEEKDAY_NAMES = {
    0: "Lunes",
    1: "Martes",
    2: "Miércoles",
    3: "Jueves",
    4: "Viernes",
    5: "Sábado",
    6: "Domingo"
}


def format_slot(time_range: TimeRange) -> str:
    """Render a slot as 'Día, DD.MM.YYYY | HH:MM – HH:MM (N min)'."""
    start = time_range.start
    end = time_range.end

    weekday = WEEKDAY_NAMES[start.day_of_week]
    date_str = start.format("DD.MM.YYYY")
    time_str = f"{start.format('HH:mm')} – {end.format('HH:mm')}"

    return f"{weekday}, {date_str} | {time_str} ({time_range.duration_minutes()} min)"
