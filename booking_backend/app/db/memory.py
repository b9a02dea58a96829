"""
In-memory stores.

Process-local implementations of the booking and audit ports, selected with
STORAGE_BACKEND=memory. Writes are serialized by a lock so the version
check and the write happen as one step.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from booking_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from booking_backend.app.domain.ports import AuditStore, BookingStore
from booking_backend.app.domain.records import (
    AuditLogEntry,
    AuditLogFilters,
    Booking,
    BookingFilters,
    as_utc,
)
from booking_backend.app.models.booking_enums import BookingStatus


def _matches(booking: Booking, filters: BookingFilters) -> bool:
    if filters.status and booking.status != filters.status:
        return False
    if filters.payment_status and booking.payment_status != filters.payment_status:
        return False
    if filters.user_id and booking.user_id != filters.user_id:
        return False
    if filters.agent_id and booking.agent_id != filters.agent_id:
        return False
    if filters.service_id and booking.service_id != filters.service_id:
        return False
    if filters.scheduled_from and booking.scheduled_date < as_utc(filters.scheduled_from):
        return False
    if filters.scheduled_to and booking.scheduled_date > as_utc(filters.scheduled_to):
        return False
    return True


class InMemoryBookingStore(BookingStore):

    def __init__(self):
        self._bookings: Dict[str, Booking] = {}
        self._write_lock: Optional[asyncio.Lock] = None

    def _lock(self) -> asyncio.Lock:
        # Created on first write so it belongs to the running event loop
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        return self._write_lock

    async def load_booking(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    async def insert_booking(self, booking: Booking) -> Booking:
        async with self._lock():
            if booking.id in self._bookings:
                raise ConflictError("Booking", booking.id, booking.version)
            self._bookings[booking.id] = booking
        return booking

    async def save_booking(self, booking: Booking, expected_version: int) -> Booking:
        async with self._lock():
            current = self._bookings.get(booking.id)
            if current is None:
                raise ResourceNotFoundError("Booking", booking.id)
            if current.version != expected_version:
                raise ConflictError("Booking", booking.id, expected_version)
            saved = booking.model_copy(update={"version": expected_version + 1})
            self._bookings[booking.id] = saved
        return saved

    async def list_bookings(
        self,
        filters: BookingFilters,
        page: int,
        page_size: int
    ) -> Tuple[List[Booking], int]:
        matching = [b for b in self._bookings.values() if _matches(b, filters)]
        matching.sort(key=lambda b: b.id)
        matching.sort(key=lambda b: b.created_at, reverse=True)
        offset = (page - 1) * page_size
        return matching[offset:offset + page_size], len(matching)

    async def count_bookings_by_status(self, filters: BookingFilters) -> Dict[BookingStatus, int]:
        counts: Dict[BookingStatus, int] = {}
        for booking in self._bookings.values():
            if _matches(booking, filters):
                counts[booking.status] = counts.get(booking.status, 0) + 1
        return counts


class InMemoryAuditStore(AuditStore):

    def __init__(self):
        self._entries: List[AuditLogEntry] = []

    @property
    def entries(self) -> List[AuditLogEntry]:
        return list(self._entries)

    async def append_audit_entry(self, entry: AuditLogEntry) -> None:
        self._entries.append(entry)

    async def query_audit_entries(
        self,
        filters: AuditLogFilters,
        page: int,
        page_size: int,
        sort_by: str,
        descending: bool
    ) -> Tuple[List[AuditLogEntry], int]:
        def keep(entry: AuditLogEntry) -> bool:
            if filters.actor_id and entry.actor_id != filters.actor_id:
                return False
            if filters.action and entry.action != filters.action:
                return False
            if filters.entity_type and entry.entity_type != filters.entity_type:
                return False
            if filters.entity_id and entry.entity_id != filters.entity_id:
                return False
            if filters.date_from and entry.created_at < as_utc(filters.date_from):
                return False
            if filters.date_to and entry.created_at > as_utc(filters.date_to):
                return False
            return True

        matching = [entry for entry in self._entries if keep(entry)]
        # Stable sorts: tie-break newest first, then the requested key
        matching.sort(key=lambda e: e.created_at, reverse=True)
        matching.sort(
            key=lambda e: (getattr(e, sort_by) is None, getattr(e, sort_by) or ""),
            reverse=descending
        )
        offset = (page - 1) * page_size
        return matching[offset:offset + page_size], len(matching)

    async def delete_audit_entries_before(self, cutoff: datetime) -> int:
        cutoff = as_utc(cutoff)
        kept = [entry for entry in self._entries if entry.created_at >= cutoff]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        return removed
