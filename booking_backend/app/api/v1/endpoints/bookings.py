"""
Booking API Endpoints.

Thin HTTP layer over BookingService: every role and ownership decision is
made by the service's authorization gate, never here.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from booking_backend.app.core.dependencies import (
    get_booking_service,
    get_current_principal,
    get_request_context,
)
from booking_backend.app.domain.bookings.booking_service import BookingService
from booking_backend.app.domain.bookings.state_machine import parse_status
from booking_backend.app.domain.records import BookingChanges, BookingFilters, Principal, RequestContext
from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus
from booking_backend.app.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingSummaryResponse,
    BookingUpdate,
    PaymentStatusRequest,
    TransitionRequest,
)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    context: RequestContext = Depends(get_request_context),
    service: BookingService = Depends(get_booking_service)
):
    """
    Create a new booking in PENDING status.

    When ``user_id`` is omitted the booking is made for the caller.
    """
    booking = await service.create_booking(
        principal,
        user_id=booking_data.user_id or principal.id,
        agent_id=booking_data.agent_id,
        service_id=booking_data.service_id,
        scheduled_date=booking_data.scheduled_date,
        amount=booking_data.amount,
        notes=booking_data.notes,
        context=context
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    agent_id: Optional[str] = Query(None),
    service_id: Optional[str] = Query(None),
    scheduled_from: Optional[datetime] = Query(None),
    scheduled_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: Optional[int] = Query(None, ge=1, description="Items per page"),
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service)
):
    """
    List bookings visible to the caller, most recent first.

    Customers only see their own bookings and agents only those assigned
    to them, whatever filters are passed.
    """
    filters = BookingFilters(
        status=parse_status(status_filter, BookingStatus) if status_filter else None,
        payment_status=parse_status(payment_status, PaymentStatus) if payment_status else None,
        user_id=user_id,
        agent_id=agent_id,
        service_id=service_id,
        scheduled_from=scheduled_from,
        scheduled_to=scheduled_to,
    )
    page_size = page_size or service.settings.default_page_size
    bookings, total = await service.list_bookings(principal, filters, page, page_size)

    return BookingListResponse(
        bookings=[BookingResponse.model_validate(booking) for booking in bookings],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/summary", response_model=BookingSummaryResponse)
async def booking_summary(
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service)
):
    """Booking counts per status within the caller's visibility."""
    return BookingSummaryResponse(**await service.booking_summary(principal))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_booking(principal, booking_id)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    booking_data: BookingUpdate,
    principal: Principal = Depends(get_current_principal),
    context: RequestContext = Depends(get_request_context),
    service: BookingService = Depends(get_booking_service)
):
    """
    Update booking details.

    Only fields present in the body are applied; the status is changed
    through the transition endpoints instead.
    """
    changes = BookingChanges(**booking_data.model_dump(exclude_unset=True))
    booking = await service.update_booking_details(principal, booking_id, changes, context)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/transitions", response_model=BookingResponse)
async def transition_booking(
    booking_id: str,
    transition: TransitionRequest,
    principal: Principal = Depends(get_current_principal),
    context: RequestContext = Depends(get_request_context),
    service: BookingService = Depends(get_booking_service)
):
    """
    Move a booking to a new status.

    Allowed moves: PENDING → CONFIRMED → COMPLETED, and PENDING or
    CONFIRMED → CANCELLED.
    """
    booking = await service.transition_booking(principal, booking_id, transition.status, context)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_principal),
    context: RequestContext = Depends(get_request_context),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.cancel_booking(principal, booking_id, context)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def update_payment_status(
    booking_id: str,
    payment: PaymentStatusRequest,
    principal: Principal = Depends(get_current_principal),
    context: RequestContext = Depends(get_request_context),
    service: BookingService = Depends(get_booking_service)
):
    """Move the payment status along PENDING → PAID → REFUNDED."""
    booking = await service.update_payment_status(principal, booking_id, payment.payment_status, context)
    return BookingResponse.model_validate(booking)
