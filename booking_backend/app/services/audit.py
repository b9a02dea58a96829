"""
Audit trail for booking operations and security events.

Append-only: entries are written after the operation they describe has
succeeded, and never updated. A failed write is reported as
AuditWriteError; deciding whether that failure matters is the caller's job.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from booking_backend.app.core.exceptions import AppException, AuditWriteError, BookingValidationError
from booking_backend.app.core.reliability import bounded
from booking_backend.app.domain.ports import AuditStore, Clock, SystemClock
from booking_backend.app.domain.records import AuditLogEntry, AuditLogFilters, Principal, RequestContext

logger = logging.getLogger("bookings.audit")


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_UPDATED = "BOOKING_UPDATED"
    PAYMENT_STATUS_CHANGED = "PAYMENT_STATUS_CHANGED"

    # Security events
    AUTHORIZATION_DENIED = "AUTHORIZATION_DENIED"

    # Housekeeping
    AUDIT_LOG_PURGED = "AUDIT_LOG_PURGED"


SORTABLE_FIELDS = ("created_at", "action", "actor_id", "entity_type")


class AuditTrail:
    """
    Append-only log of who did what, when.

    Usage:
        trail = AuditTrail(store, clock)
        entry = trail.build_entry(principal, AuditAction.BOOKING_CREATED,
                                  entity_type="Booking", entity_id=booking.id)
        await trail.record(entry)
    """

    def __init__(self, store: AuditStore, clock: Optional[Clock] = None, timeout_seconds: float = 2.0):
        if store is None:
            raise ValueError("AuditTrail requires an audit store")
        self.store = store
        self.clock = clock or SystemClock()
        self.timeout_seconds = timeout_seconds

    def build_entry(
        self,
        actor: Principal,
        action: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None
    ) -> AuditLogEntry:
        """
        Build an entry stamped with a fresh id and the current time.

        Args:
            actor: Principal performing the action
            action: Action being recorded (use AuditAction constants)
            entity_type: Kind of entity acted upon, e.g. "Booking"
            entity_id: ID of the entity acted upon
            details: Additional context, JSON-serializable
            context: Request metadata (IP address, user agent)
        """
        return AuditLogEntry(
            id=str(uuid.uuid4()),
            actor_id=actor.id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
            created_at=self.clock.now(),
        )

    async def record(self, entry: AuditLogEntry) -> None:
        """
        Persist an entry.

        Raises:
            AuditWriteError: if the store fails or exceeds its time bound
        """
        try:
            await bounded(
                self.store.append_audit_entry(entry),
                self.timeout_seconds,
                operation="append_audit_entry"
            )
        except AppException as exc:
            raise AuditWriteError(entry.action, exc.message) from exc
        except Exception as exc:
            raise AuditWriteError(entry.action, f"{type(exc).__name__}: {exc}") from exc

    async def query(
        self,
        filters: AuditLogFilters,
        page: int = 1,
        page_size: int = 50,
        sort_by: str = "created_at",
        descending: bool = True
    ) -> Tuple[List[AuditLogEntry], int]:
        """
        Retrieve audit entries with AND-combined filters.

        Returns:
            (entries, total_count), most recent first by default

        Raises:
            BookingValidationError: on an unknown sort key or bad pagination
        """
        if sort_by not in SORTABLE_FIELDS:
            raise BookingValidationError(
                f"Cannot sort audit log by '{sort_by}'",
                details={"allowed": list(SORTABLE_FIELDS)}
            )
        if page < 1 or page_size < 1:
            raise BookingValidationError("page and page_size must be positive")
        if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
            raise BookingValidationError("date_from must not be after date_to")

        return await self.store.query_audit_entries(filters, page, page_size, sort_by, descending)

    async def purge_older_than(self, retention_days: int) -> int:
        """
        Delete entries older than the retention window.

        Housekeeping only; never called from a business operation.
        """
        if retention_days < 1:
            raise BookingValidationError("retention_days must be at least 1")
        cutoff = self.clock.now() - timedelta(days=retention_days)
        removed = await self.store.delete_audit_entries_before(cutoff)
        logger.info(
            "Audit log purged",
            extra={"cutoff": cutoff.isoformat(), "removed": removed}
        )
        return removed
