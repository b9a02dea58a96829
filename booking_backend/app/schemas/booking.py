"""
Booking Pydantic schemas.

Defines request and response models for the booking endpoints.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus


class BookingCreate(BaseModel):
    """Schema for creating a booking."""
    user_id: Optional[str] = Field(
        None, min_length=1, max_length=64,
        description="Customer the booking is for; defaults to the caller"
    )
    agent_id: str = Field(..., min_length=1, max_length=64)
    service_id: str = Field(..., min_length=1, max_length=64)
    scheduled_date: datetime
    amount: Decimal = Field(..., description="Booking amount, non-negative")
    notes: Optional[str] = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    """
    Schema for updating booking details.

    Only fields present in the request body are applied. Customers may only
    send ``notes``.
    """
    notes: Optional[str] = Field(None, max_length=2000)
    agent_notes: Optional[str] = Field(None, max_length=2000)
    scheduled_date: Optional[datetime] = None
    amount: Optional[Decimal] = Field(None, ge=0)


class TransitionRequest(BaseModel):
    """Schema for a booking status change."""
    status: str = Field(..., description="Target status: CONFIRMED, COMPLETED or CANCELLED")


class PaymentStatusRequest(BaseModel):
    """Schema for a payment status change."""
    payment_status: str = Field(..., description="Target payment status: PAID or REFUNDED")


class StatusHistoryResponse(BaseModel):
    status: BookingStatus
    updated_at: datetime
    updated_by: Optional[str]

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Schema for booking response."""
    id: str
    user_id: str
    agent_id: str
    service_id: str
    status: BookingStatus
    payment_status: PaymentStatus
    scheduled_date: datetime
    amount: Decimal
    notes: Optional[str]
    agent_notes: Optional[str]
    status_history: List[StatusHistoryResponse]
    last_status_update: datetime
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""
    bookings: List[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingSummaryResponse(BaseModel):
    """Booking counts per status within the caller's visibility."""
    total: int
    by_status: Dict[str, int]
