"""
Tests for the in-memory booking store.
"""

import asyncio
import json
import logging

import pendulum
import pytest

from clinicslots.adapters.memory_store import InMemoryBookingStore
from clinicslots.domain.exceptions import SlotConflictError
from clinicslots.domain.models import BookedSlot, TimeRange

TZ = "America/Bogota"


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"2025-03-10 {start}", tz=TZ),
        end=pendulum.parse(f"2025-03-10 {end}", tz=TZ),
    )


class TestInsertBooking:
    """Tests for the commit-time guard."""

    def test_insert_into_empty_store(self):
        store = InMemoryBookingStore()

        booking = asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10, "p-1"))

        assert booking.professional_id == "dr-rojas"
        assert booking.patient_id == "p-1"
        assert booking.id
        assert store.all_bookings() == [booking]

    def test_rejects_slot_within_buffer(self):
        store = InMemoryBookingStore()
        asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10))

        with pytest.raises(SlotConflictError):
            asyncio.run(store.insert_booking("dr-rojas", _range("10:35", "11:05"), 10))

    def test_accepts_slot_exactly_one_buffer_away(self):
        store = InMemoryBookingStore()
        asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10))

        asyncio.run(store.insert_booking("dr-rojas", _range("10:40", "11:10"), 10))

        assert len(store.all_bookings()) == 2

    def test_zero_buffer_still_rejects_overlap(self):
        store = InMemoryBookingStore()
        asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 0))

        with pytest.raises(SlotConflictError):
            asyncio.run(store.insert_booking("dr-rojas", _range("10:15", "10:45"), 0))

        # Back-to-back is fine without a buffer
        asyncio.run(store.insert_booking("dr-rojas", _range("10:30", "11:00"), 0))

    def test_professionals_are_independent(self):
        store = InMemoryBookingStore()
        asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10))

        asyncio.run(store.insert_booking("dr-mendez", _range("10:00", "10:30"), 10))

        assert len(store.all_bookings()) == 2


class TestListBooked:
    """Tests for range queries."""

    def test_returns_intersecting_bookings_sorted(self):
        store = InMemoryBookingStore([
            BookedSlot(id="b-2", professional_id="dr-rojas", time_range=_range("14:00", "14:30")),
            BookedSlot(id="b-1", professional_id="dr-rojas", time_range=_range("09:00", "09:30")),
            BookedSlot(id="b-3", professional_id="dr-rojas", time_range=_range("16:00", "16:30")),
            BookedSlot(id="b-4", professional_id="dr-mendez", time_range=_range("10:00", "10:30")),
        ])

        window = _range("08:00", "15:00")
        booked = asyncio.run(store.list_booked("dr-rojas", window.start, window.end))

        assert [b.id for b in booked] == ["b-1", "b-2"]

    def test_unknown_professional(self):
        store = InMemoryBookingStore()
        window = _range("08:00", "17:00")

        assert asyncio.run(store.list_booked("nobody", window.start, window.end)) == []


class TestJsonFixtures:
    """Tests for loading and saving bookings files."""

    def test_load_from_json(self, tmp_path):
        path = tmp_path / "bookings.json"
        path.write_text(json.dumps({
            "bookings": [
                {
                    "id": "b-1",
                    "professional_id": "dr-rojas",
                    "start": "2025-03-10T10:00:00",
                    "end": "2025-03-10T10:30:00",
                    "patient_id": "p-1",
                }
            ]
        }), encoding="utf-8")

        store = InMemoryBookingStore.load_from_json(path, timezone=TZ)
        bookings = store.all_bookings()

        assert len(bookings) == 1
        assert bookings[0].time_range == _range("10:00", "10:30")
        assert bookings[0].patient_id == "p-1"

    def test_invalid_entries_are_skipped(self, tmp_path, caplog):
        path = tmp_path / "bookings.json"
        path.write_text(json.dumps({
            "bookings": [
                {"id": "b-1", "professional_id": "dr-rojas", "start": "2025-03-10T10:00:00"},
                {"id": "b-2", "professional_id": "dr-rojas",
                 "start": "2025-03-10T11:00:00", "end": "2025-03-10T10:00:00"},
                {"id": "b-3", "professional_id": "dr-rojas",
                 "start": "2025-03-10T12:00:00", "end": "2025-03-10T12:30:00"},
            ]
        }), encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            store = InMemoryBookingStore.load_from_json(path, timezone=TZ)

        assert [b.id for b in store.all_bookings()] == ["b-3"]
        assert "Skipping invalid booking entry" in caplog.text

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            InMemoryBookingStore.load_from_json(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bookings.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid JSON"):
            InMemoryBookingStore.load_from_json(path)

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "bookings.json"
        store = InMemoryBookingStore()
        booking = asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10, "p-1"))

        store.save_to_json(path)
        reloaded = InMemoryBookingStore.load_from_json(path, timezone=TZ)

        assert reloaded.all_bookings() == [booking]

    def test_save_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "bookings.json"
        store = InMemoryBookingStore()
        asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10))

        store.save_to_json(path)

        assert [p.name for p in tmp_path.iterdir()] == ["bookings.json"]

    def test_failed_save_keeps_previous_file(self, tmp_path, monkeypatch):
        path = tmp_path / "bookings.json"
        path.write_text('{"bookings": []}', encoding="utf-8")
        store = InMemoryBookingStore()
        asyncio.run(store.insert_booking("dr-rojas", _range("10:00", "10:30"), 10))

        def failing_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("clinicslots.adapters.memory_store.json.dump", failing_dump)

        with pytest.raises(OSError, match="disk full"):
            store.save_to_json(path)

        assert path.read_text(encoding="utf-8") == '{"bookings": []}'
        assert [p.name for p in tmp_path.iterdir()] == ["bookings.json"]
