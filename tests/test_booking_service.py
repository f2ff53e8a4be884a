"""
Tests for the BookingService orchestration layer.
"""

import asyncio
from typing import Dict, List

import pendulum
import pytest

from clinicslots.adapters.memory_store import InMemoryBookingStore
from clinicslots.domain.exceptions import SlotConflictError
from clinicslots.domain.models import BookedSlot, TimeRange
from clinicslots.domain.scheduling import SlotScheduler
from clinicslots.services.booking import BookingService

TZ = "America/Bogota"


def _at(clock: str):
    return pendulum.parse(f"2025-03-10 {clock}", tz=TZ)


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(start=_at(start), end=_at(end))


class StubBookingStore:
    """Minimal stub matching BookingStoreProtocol."""

    def __init__(self, bookings: List[BookedSlot]):
        self._bookings = bookings
        self.calls: List[Dict[str, str]] = []
        self.inserted: List[TimeRange] = []

    async def list_booked(self, professional_id, start, end):
        self.calls.append(
            {
                "professional_id": professional_id,
                "start": start.to_datetime_string(),
                "end": end.to_datetime_string(),
            }
        )
        return [
            b for b in self._bookings
            if b.professional_id == professional_id and b.start < end and b.end > start
        ]

    async def insert_booking(self, professional_id, time_range, buffer_minutes, patient_id=None):
        self.inserted.append(time_range)
        return BookedSlot(id="new", professional_id=professional_id, time_range=time_range, patient_id=patient_id)


def _build_service(bookings: List[BookedSlot], buffer_minutes: float = 10) -> BookingService:
    return BookingService(
        store=StubBookingStore(bookings),
        scheduler=SlotScheduler(buffer_minutes=buffer_minutes),
    )


def test_fetch_booked_widens_query_by_buffer():
    """The store is asked for bookings up to one buffer outside the range."""
    service = _build_service([])

    asyncio.run(service.fetch_booked("dr-rojas", _at("09:00"), _at("10:00")))

    call = service._store.calls[0]
    assert call["start"] == "2025-03-10 08:50:00"
    assert call["end"] == "2025-03-10 10:10:00"


def test_find_available_slots_filters_booked():
    bookings = [
        BookedSlot(id="b-1", professional_id="dr-rojas", time_range=_range("10:00", "10:30")),
        BookedSlot(id="b-2", professional_id="dr-mendez", time_range=_range("09:00", "09:30")),
    ]
    service = _build_service(bookings)

    slots = asyncio.run(
        service.find_available_slots(
            professional_id="dr-rojas",
            window_start=_at("09:00"),
            window_end=_at("11:00"),
            duration_minutes=30,
        )
    )

    assert slots == [_range("09:00", "09:30")]


def test_booking_just_outside_window_still_counts():
    """A booking after the window end but inside the buffer blocks the last slot."""
    bookings = [
        BookedSlot(id="b-1", professional_id="dr-rojas", time_range=_range("10:15", "10:45")),
    ]
    service = _build_service(bookings)

    slots = asyncio.run(
        service.find_available_slots(
            professional_id="dr-rojas",
            window_start=_at("09:00"),
            window_end=_at("10:10"),
            duration_minutes=30,
        )
    )

    assert slots == [_range("09:00", "09:30")]


def test_find_available_slots_empty_window_skips_store():
    service = _build_service([])

    slots = asyncio.run(
        service.find_available_slots(
            professional_id="dr-rojas",
            window_start=_at("10:00"),
            window_end=_at("10:00"),
            duration_minutes=30,
        )
    )

    assert slots == []
    assert service._store.calls == []


def test_book_rejects_conflict_before_store():
    bookings = [
        BookedSlot(id="b-1", professional_id="dr-rojas", time_range=_range("10:25", "10:40")),
    ]
    service = _build_service(bookings)

    with pytest.raises(SlotConflictError) as excinfo:
        asyncio.run(service.book(professional_id="dr-rojas", candidate=_range("10:00", "10:30")))

    assert excinfo.value.candidate == _range("10:00", "10:30")
    assert service._store.inserted == []


def test_book_inserts_free_slot():
    service = _build_service([])

    booking = asyncio.run(
        service.book(professional_id="dr-rojas", candidate=_range("11:00", "11:30"), patient_id="p-3")
    )

    assert booking.time_range == _range("11:00", "11:30")
    assert booking.patient_id == "p-3"
    assert service._store.inserted == [_range("11:00", "11:30")]


def test_zero_buffer_leaves_overlap_to_the_store():
    """The pre-check is bypassed, but the store still refuses the overlap."""
    store = InMemoryBookingStore([
        BookedSlot(id="b-1", professional_id="dr-rojas", time_range=_range("10:00", "10:30")),
    ])
    service = BookingService(store=store, scheduler=SlotScheduler(buffer_minutes=0))

    assert not service.scheduler.conflicts(_range("10:00", "10:30"), [_range("10:00", "10:30")])

    with pytest.raises(SlotConflictError, match="b-1"):
        asyncio.run(service.book(professional_id="dr-rojas", candidate=_range("10:00", "10:30")))


class YieldingStore(InMemoryBookingStore):
    """Yields to the event loop on reads so concurrent bookings interleave."""

    async def list_booked(self, professional_id, start, end):
        await asyncio.sleep(0)
        return await super().list_booked(professional_id, start, end)


def test_concurrent_bookings_admit_only_one():
    """Both requests pass the pre-check; the store admits exactly one."""
    store = YieldingStore()
    service = BookingService(store=store, scheduler=SlotScheduler(buffer_minutes=10))

    async def race():
        return await asyncio.gather(
            service.book(professional_id="dr-rojas", candidate=_range("10:00", "10:30")),
            service.book(professional_id="dr-rojas", candidate=_range("10:05", "10:35")),
            return_exceptions=True,
        )

    results = asyncio.run(race())

    assert sum(isinstance(r, BookedSlot) for r in results) == 1
    assert sum(isinstance(r, SlotConflictError) for r in results) == 1
    assert len(store.all_bookings()) == 1
