"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from booking_backend.app.api.v1.endpoints import audit_logs, bookings

router = APIRouter()

router.include_router(bookings.router)
router.include_router(audit_logs.router)
