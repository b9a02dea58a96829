"""
Domain records shared by the booking core and its adapters.

Each entity is a closed, explicitly-typed record. Records are immutable:
every change produces a new record via ``model_copy``.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Tuple

from pydantic import BaseModel, Field

from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus
from booking_backend.app.models.enums import UserRole


class Principal(BaseModel):
    """The authenticated actor performing an operation."""
    id: str
    role: UserRole

    class Config:
        frozen = True


class StatusHistoryEntry(BaseModel):
    """One status change of a booking."""
    status: BookingStatus
    updated_at: datetime
    updated_by: Optional[str] = None

    class Config:
        frozen = True


class Booking(BaseModel):
    """
    Booking record.

    ``status_history`` is append-only and its last entry always carries the
    current ``status``. ``version`` is the optimistic concurrency marker
    maintained by the booking store.
    """
    id: str
    user_id: str
    agent_id: str
    service_id: str
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    scheduled_date: datetime
    amount: Decimal
    notes: Optional[str] = None
    agent_notes: Optional[str] = None
    status_history: Tuple[StatusHistoryEntry, ...]
    last_status_update: datetime
    version: int = 1
    created_at: datetime
    updated_at: datetime

    class Config:
        frozen = True


class BookingChanges(BaseModel):
    """Payload fields of a booking that carry no transition semantics."""
    notes: Optional[str] = None
    agent_notes: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    amount: Optional[Decimal] = Field(None, ge=0)

    class Config:
        frozen = True

    # Fields only an agent or admin may change
    AGENT_FIELDS: ClassVar[Tuple[str, ...]] = ("agent_notes", "scheduled_date", "amount")

    def provided(self) -> Dict[str, Any]:
        """Fields explicitly set by the caller."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class BookingFilters(BaseModel):
    """AND-combined equality/range filters for booking lists."""
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    user_id: Optional[str] = None
    agent_id: Optional[str] = None
    service_id: Optional[str] = None
    scheduled_from: Optional[datetime] = None
    scheduled_to: Optional[datetime] = None

    class Config:
        frozen = True


class AuditLogEntry(BaseModel):
    """Immutable audit trail entry."""
    id: str
    actor_id: str
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        frozen = True


class AuditLogFilters(BaseModel):
    """AND-combined equality/range filters for audit queries."""
    actor_id: Optional[str] = None
    action: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    class Config:
        frozen = True


class RequestContext(BaseModel):
    """Request metadata stamped on audit entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    class Config:
        frozen = True


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
