"""
FastAPI dependencies.

Decodes the bearer token into a Principal and wires the BookingService
to the configured storage backend.
"""

from functools import lru_cache
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from booking_backend.app.core.config import settings
from booking_backend.app.core.exceptions import AuthenticationError
from booking_backend.app.core.jwt import decode_access_token
from booking_backend.app.db.audit_store import SqlAuditStore
from booking_backend.app.db.booking_store import SqlBookingStore
from booking_backend.app.db.memory import InMemoryAuditStore, InMemoryBookingStore
from booking_backend.app.db.session import AsyncSessionLocal
from booking_backend.app.domain.bookings.booking_service import BookingService
from booking_backend.app.domain.records import Principal, RequestContext
from booking_backend.app.models.enums import UserRole
from booking_backend.app.services.audit import AuditTrail

# HTTP Bearer security scheme; missing credentials are reported as ERR_AUTH_001
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Principal:
    """
    FastAPI dependency for JWT authentication.

    Raises:
        AuthenticationError: 401 if the token is missing, invalid, expired,
            or lacks a subject or a known role
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid token role")

    return Principal(id=str(subject), role=role)


def get_request_context(request: Request) -> RequestContext:
    """Request metadata stamped on audit entries."""
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "")[:255] or None,
    )


@lru_cache
def get_booking_service() -> BookingService:
    """
    Process-wide BookingService.

    STORAGE_BACKEND=memory selects the in-memory stores, anything else the
    SQLAlchemy stores on the application engine.
    """
    if settings.storage_backend == "memory":
        bookings, audit_store = InMemoryBookingStore(), InMemoryAuditStore()
    else:
        bookings = SqlBookingStore(AsyncSessionLocal)
        audit_store = SqlAuditStore(AsyncSessionLocal)

    return BookingService(
        bookings=bookings,
        audit_trail=AuditTrail(audit_store, timeout_seconds=settings.audit_timeout_seconds),
        settings=settings,
    )
