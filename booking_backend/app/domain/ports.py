"""
Persistence and clock ports consumed by the booking core.

The core never talks to a database directly; adapters in
``booking_backend.app.db`` implement these interfaces.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from booking_backend.app.domain.records import (
    AuditLogEntry,
    AuditLogFilters,
    Booking,
    BookingFilters,
)
from booking_backend.app.models.booking_enums import BookingStatus


class BookingStore(ABC):
    """Storage port for bookings."""

    @abstractmethod
    async def load_booking(self, booking_id: str) -> Optional[Booking]:
        """Return the booking, or None when it does not exist."""

    @abstractmethod
    async def insert_booking(self, booking: Booking) -> Booking:
        """Persist a freshly created booking."""

    @abstractmethod
    async def save_booking(self, booking: Booking, expected_version: int) -> Booking:
        """
        Write back a modified booking.

        The write is conditioned on the stored version still being
        ``expected_version``; on mismatch ``ConflictError`` is raised and
        nothing is written. Returns the booking carrying its new version.
        """

    @abstractmethod
    async def list_bookings(
        self,
        filters: BookingFilters,
        page: int,
        page_size: int
    ) -> Tuple[List[Booking], int]:
        """Return one page of bookings, most recently created first, and the total count."""

    @abstractmethod
    async def count_bookings_by_status(self, filters: BookingFilters) -> Dict[BookingStatus, int]:
        """Count bookings matching ``filters`` grouped by status."""


class AuditStore(ABC):
    """Storage port for the audit trail."""

    @abstractmethod
    async def append_audit_entry(self, entry: AuditLogEntry) -> None:
        """Append one entry. Entries are never updated."""

    @abstractmethod
    async def query_audit_entries(
        self,
        filters: AuditLogFilters,
        page: int,
        page_size: int,
        sort_by: str,
        descending: bool
    ) -> Tuple[List[AuditLogEntry], int]:
        """Return one page of entries and the total count."""

    @abstractmethod
    async def delete_audit_entries_before(self, cutoff: datetime) -> int:
        """Delete entries created before ``cutoff``; returns the number removed."""


class Clock(ABC):
    """Time source port."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
