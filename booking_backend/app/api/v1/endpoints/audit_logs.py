"""
Audit Log API Endpoints.

Read access to the audit trail for admins and super admins.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from booking_backend.app.core.dependencies import (
    get_booking_service,
    get_current_principal,
    get_request_context,
)
from booking_backend.app.domain.bookings.booking_service import BookingService
from booking_backend.app.domain.records import AuditLogFilters, Principal, RequestContext
from booking_backend.app.schemas.audit import AuditLogListResponse, AuditLogResponse

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get("", response_model=AuditLogListResponse)
async def get_audit_logs(
    actor_id: Optional[str] = Query(None, description="Filter by actor"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    entity_type: Optional[str] = Query(None, description="Filter by entity type"),
    entity_id: Optional[str] = Query(None, description="Filter by entity"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: Optional[int] = Query(None, ge=1, description="Items per page"),
    sort_by: str = Query("created_at", description="created_at, action, actor_id or entity_type"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    principal: Principal = Depends(get_current_principal),
    context: RequestContext = Depends(get_request_context),
    service: BookingService = Depends(get_booking_service)
):
    """
    Query the audit trail with optional filtering (admin-only).

    Filters are AND-combined; most recent entries first by default.
    """
    filters = AuditLogFilters(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        date_from=date_from,
        date_to=date_to,
    )
    page_size = page_size or service.settings.default_page_size
    logs, total = await service.query_audit_log(
        principal,
        filters,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        descending=order == "desc",
        context=context
    )

    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size
    )
