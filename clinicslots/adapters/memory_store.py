"""
In-memory booking store, optionally backed by a JSON fixture file.

Used by the CLI and the tests in place of a database. It plays the role of
the authoritative commit-time guard: ``insert_booking`` checks and writes in
one step so concurrent bookings cannot both be admitted.
"""

import asyncio
import json
import logging
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import SlotConflictError
from ..domain.models import BookedSlot, TimeRange
from ..domain.scheduling import Number

logger = logging.getLogger(__name__)


class InMemoryBookingStore:
    """
    Keeps booked slots per professional in memory.

    Fixture format (bookings.json):
    {
        "bookings": [
            {
                "id": "b-1",
                "professional_id": "dr-rojas",
                "start": "2025-03-10T10:00:00",
                "end": "2025-03-10T10:30:00",
                "patient_id": "p-7"
            }
        ]
    }
    """

    def __init__(self, bookings: Iterable[BookedSlot] = ()):
        self._bookings: Dict[str, List[BookedSlot]] = {}
        self._lock = asyncio.Lock()

        for booking in bookings:
            self._bookings.setdefault(booking.professional_id, []).append(booking)

    @classmethod
    def load_from_json(cls, path: Path, timezone: str = "America/Bogota") -> "InMemoryBookingStore":
        """
        Load bookings from a JSON fixture file.

        Items that cannot be parsed are skipped with a warning.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not valid JSON
        """
        if not path.exists():
            raise FileNotFoundError(f"Bookings file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {path}: {exc}") from exc

        items = data.get("bookings", []) if isinstance(data, dict) else data

        bookings: List[BookedSlot] = []
        for item in items:
            try:
                bookings.append(
                    BookedSlot(
                        id=str(item["id"]),
                        professional_id=str(item["professional_id"]),
                        time_range=TimeRange(
                            start=pendulum.parse(item["start"], tz=timezone),
                            end=pendulum.parse(item["end"], tz=timezone),
                        ),
                        patient_id=item.get("patient_id"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid booking entry %r: %s", item, e)
                continue

        logger.info("Loaded %d bookings from %s", len(bookings), path)
        return cls(bookings)

    def save_to_json(self, path: Path) -> None:
        """
        Write all bookings back to a JSON fixture file.

        The data goes to a sibling temp file that then replaces path, so an
        interrupted write leaves the previous file intact.
        """
        items = []
        for booking in self.all_bookings():
            items.append({
                "id": booking.id,
                "professional_id": booking.professional_id,
                **booking.time_range.to_dict(),
                "patient_id": booking.patient_id,
            })

        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"bookings": items}, f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

    def all_bookings(self) -> List[BookedSlot]:
        """Return every booking, ordered by professional then start."""
        result: List[BookedSlot] = []
        for professional_id in sorted(self._bookings):
            result.extend(sorted(self._bookings[professional_id], key=lambda b: b.start))
        return result

    async def list_booked(
        self,
        professional_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[BookedSlot]:
        """Return bookings of the professional that intersect [start, end)."""
        bookings = self._bookings.get(professional_id, [])
        return sorted(
            (b for b in bookings if b.start < end and b.end > start),
            key=lambda b: b.start,
        )

    async def insert_booking(
        self,
        professional_id: str,
        time_range: TimeRange,
        buffer_minutes: Number,
        patient_id: Optional[str] = None,
    ) -> BookedSlot:
        """
        Persist a booking if it keeps the professional's schedule buffered.

        Unlike the pre-check, a zero buffer still rejects exact overlaps.

        The check and the append contain no await, so on one event loop they
        already run without interleaving. The lock keeps that true for
        subclasses whose guarded section awaits I/O.

        Raises:
            SlotConflictError: If the slot intersects an existing booking
        """
        expanded = time_range.widened(timedelta(minutes=max(0, buffer_minutes)))

        async with self._lock:
            existing = self._bookings.setdefault(professional_id, [])

            for booking in existing:
                if expanded.overlaps(booking):
                    logger.info(
                        "Store rejected %s for %s: overlaps booking %s",
                        time_range,
                        professional_id,
                        booking.id,
                    )
                    raise SlotConflictError(
                        time_range,
                        f"Slot {time_range} overlaps booking {booking.id}",
                    )

            booking = BookedSlot(
                id=uuid.uuid4().hex,
                professional_id=professional_id,
                time_range=time_range,
                patient_id=patient_id,
            )
            existing.append(booking)

        logger.info("Booked %s for %s (id=%s)", time_range, professional_id, booking.id)
        return booking
