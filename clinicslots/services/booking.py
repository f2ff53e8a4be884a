"""
Application services for availability queries and booking admission.

The service fetches booked slots through a storage adapter and delegates the
slot arithmetic to the domain-level ``SlotScheduler``. The scheduler's conflict
check is only a pre-filter: two concurrent requests can both pass it, so the
store's ``insert_booking`` must enforce non-overlap atomically and is the final
word on whether a booking is admitted.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional, Protocol

from pendulum import DateTime

from ..domain.exceptions import SlotConflictError
from ..domain.models import BookedSlot, TimeRange
from ..domain.scheduling import Number, SlotScheduler

logger = logging.getLogger(__name__)


class BookingStoreProtocol(Protocol):
    """Protocol describing the storage behaviour needed by the service."""

    async def list_booked(
        self,
        professional_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[BookedSlot]:
        """Return bookings of the professional that intersect [start, end)."""

    async def insert_booking(
        self,
        professional_id: str,
        time_range: TimeRange,
        buffer_minutes: Number,
        patient_id: Optional[str] = None,
    ) -> BookedSlot:
        """Persist a booking, raising SlotConflictError if it would overlap."""


class BookingService:
    """
    Orchestrates booked-slot retrieval, slot generation and booking.

    Dependency inversion toward a protocol makes it easy to plug in a real
    database adapter or the in-memory store used in tests and the CLI.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        scheduler: SlotScheduler,
    ) -> None:
        self._store = store
        self._scheduler = scheduler

    @property
    def scheduler(self) -> SlotScheduler:
        return self._scheduler

    async def fetch_booked(
        self,
        professional_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[TimeRange]:
        """
        Fetch booked intervals that could interfere with slots in [start, end).

        The query range is widened by the buffer so bookings just outside the
        window still count.
        """
        margin = self._margin()
        booked = await self._store.list_booked(professional_id, start - margin, end + margin)
        return [slot.time_range for slot in booked]

    async def find_available_slots(
        self,
        *,
        professional_id: str,
        window_start: DateTime,
        window_end: DateTime,
        duration_minutes: Number,
    ) -> List[TimeRange]:
        """
        Generate slots for the window and drop those that collide with bookings.
        """
        candidates = self._scheduler.generate(window_start, window_end, duration_minutes)
        if not candidates:
            return []

        booked = await self.fetch_booked(professional_id, window_start, window_end)
        available = [slot for slot in candidates if not self._scheduler.conflicts(slot, booked)]

        logger.debug(
            "Professional %s: %d of %d candidate slots available",
            professional_id,
            len(available),
            len(candidates),
        )
        return available

    async def book(
        self,
        *,
        professional_id: str,
        candidate: TimeRange,
        patient_id: Optional[str] = None,
    ) -> BookedSlot:
        """
        Admit a booking for the candidate slot.

        Raises:
            SlotConflictError: If the pre-check or the store rejects the slot
        """
        booked = await self.fetch_booked(professional_id, candidate.start, candidate.end)

        if self._scheduler.conflicts(candidate, booked):
            logger.info("Rejected booking for %s at %s: buffer conflict", professional_id, candidate)
            raise SlotConflictError(candidate)

        return await self._store.insert_booking(
            professional_id,
            candidate,
            self._scheduler.buffer_minutes,
            patient_id,
        )

    def _margin(self) -> timedelta:
        return timedelta(minutes=self._scheduler.buffer_minutes)
