"""
Adapters layer - Storage integrations for booked slots.
"""

from .memory_store import InMemoryBookingStore

__all__ = ["InMemoryBookingStore"]
