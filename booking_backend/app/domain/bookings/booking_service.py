"""
Booking Service (Domain Logic).

Orchestrates every public booking operation:

1. Load the booking (NotFound if absent)
2. Authorize through the AuthorizationGate with the owner id for the
   principal's role; a denial stops here, before any mutation
3. Apply the BookingStateMachine
4. Save with an optimistic version check (Conflict on a concurrent update)
5. Record an audit entry; an audit failure is logged and absorbed
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar, Union

from booking_backend.app.core.config import Settings, settings as default_settings
from booking_backend.app.core.exceptions import (
    AuditWriteError,
    BookingValidationError,
    ResourceNotFoundError,
)
from booking_backend.app.core.guards import AuthorizationGate, Decision
from booking_backend.app.core.reliability import bounded
from booking_backend.app.domain.bookings.state_machine import BookingStateMachine, parse_status
from booking_backend.app.domain.ports import BookingStore, Clock, SystemClock
from booking_backend.app.domain.records import (
    AuditLogEntry,
    AuditLogFilters,
    Booking,
    BookingChanges,
    BookingFilters,
    Principal,
    RequestContext,
)
from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus
from booking_backend.app.models.enums import PolicyAction, ResourceKind
from booking_backend.app.services.audit import AuditAction, AuditTrail

logger = logging.getLogger("bookings.service")

T = TypeVar("T")

ENTITY_BOOKING = "Booking"

# Audit entity_type per guarded resource kind; denials share the business spelling
ENTITY_TYPES = {ResourceKind.BOOKING: ENTITY_BOOKING}

STATUS_AUDIT_ACTIONS = {
    BookingStatus.CONFIRMED: AuditAction.BOOKING_CONFIRMED,
    BookingStatus.COMPLETED: AuditAction.BOOKING_COMPLETED,
    BookingStatus.CANCELLED: AuditAction.BOOKING_CANCELLED,
}


class BookingService:
    """
    Public booking operations.

    All collaborators are injected; the service holds no global state.
    """

    def __init__(
        self,
        bookings: BookingStore,
        audit_trail: AuditTrail,
        gate: Optional[AuthorizationGate] = None,
        state_machine: Optional[BookingStateMachine] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None
    ):
        if bookings is None:
            raise ValueError("BookingService requires a booking store")
        if audit_trail is None:
            raise ValueError("BookingService requires an audit trail")
        self.bookings = bookings
        self.audit_trail = audit_trail
        self.gate = gate or AuthorizationGate()
        self.clock = clock or SystemClock()
        self.state_machine = state_machine or BookingStateMachine(self.clock)
        self.settings = settings or default_settings

    # ── Helpers ───────────────────────────────────────────────

    async def _bounded(self, awaitable: Awaitable[T], operation: str) -> T:
        return await bounded(awaitable, self.settings.persistence_timeout_seconds, operation)

    async def _load(self, booking_id: str) -> Booking:
        booking = await self._bounded(self.bookings.load_booking(booking_id), "load_booking")
        if booking is None:
            raise ResourceNotFoundError("Booking", booking_id)
        return booking

    async def _save(self, booking: Booking, expected_version: int) -> Booking:
        return await self._bounded(
            self.bookings.save_booking(booking, expected_version),
            "save_booking"
        )

    async def _record(self, entry: AuditLogEntry) -> None:
        """Write an audit entry; failures are logged, never raised."""
        try:
            await self.audit_trail.record(entry)
        except AuditWriteError as exc:
            logger.warning(
                "Audit write failed; operation result stands",
                extra={
                    "action": entry.action,
                    "actor_id": entry.actor_id,
                    "entity_type": entry.entity_type,
                    "entity_id": entry.entity_id,
                    "reason": exc.message,
                }
            )

    async def _authorize(
        self,
        principal: Principal,
        resource_kind: ResourceKind,
        action: PolicyAction,
        resource_owner_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> None:
        """
        Check the gate; on DENY optionally audit a security event and raise.

        Raises:
            AuthorizationDeniedError: on DENY
            AuditWriteError: on DENY when denial auditing is strict and the write failed
        """
        decision = self.gate.check(principal, resource_kind, action, resource_owner_id)
        if decision == Decision.ALLOW:
            return

        logger.info(
            "Authorization denied",
            extra={
                "principal_id": principal.id,
                "role": getattr(principal.role, "value", principal.role),
                "resource_kind": resource_kind.value,
                "action": action.value,
                "entity_id": entity_id,
            }
        )

        if self.settings.audit_denials:
            entry = self.audit_trail.build_entry(
                principal,
                AuditAction.AUTHORIZATION_DENIED,
                entity_type=ENTITY_TYPES.get(resource_kind, resource_kind.value),
                entity_id=entity_id,
                details={
                    "action": action.value,
                    "role": getattr(principal.role, "value", principal.role),
                    "security_event": True,
                },
                context=context
            )
            if self.settings.denial_audit_mode == "strict":
                await self.audit_trail.record(entry)
            else:
                await self._record(entry)

        raise self.gate.denied(principal, resource_kind, action)

    def _page(self, page: int, page_size: Optional[int]) -> Tuple[int, int]:
        page_size = page_size or self.settings.default_page_size
        if page < 1:
            raise BookingValidationError("page must be at least 1", details={"field": "page"})
        if page_size < 1 or page_size > self.settings.max_page_size:
            raise BookingValidationError(
                f"page_size must be between 1 and {self.settings.max_page_size}",
                details={"field": "page_size"}
            )
        return page, page_size

    def _narrow(self, principal: Principal, filters: Optional[BookingFilters]) -> Optional[BookingFilters]:
        scope = self.gate.scope_for(principal)
        if scope is None:
            return None
        return (filters or BookingFilters()).model_copy(update=scope)

    # ── Operations ────────────────────────────────────────────

    async def create_booking(
        self,
        principal: Principal,
        user_id: str,
        agent_id: str,
        service_id: str,
        scheduled_date: datetime,
        amount: Union[Decimal, int, float, str],
        notes: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> Booking:
        """
        Create a PENDING booking.

        Validates:
        - Principal may create bookings (agents only for bookings assigned to them)
        - References are present and the amount is non-negative
        """
        await self._authorize(
            principal,
            ResourceKind.BOOKING,
            PolicyAction.CREATE,
            resource_owner_id=self.gate.booking_owner_id(principal, user_id, agent_id),
            context=context
        )

        draft = self.state_machine.create(
            user_id=user_id,
            agent_id=agent_id,
            service_id=service_id,
            scheduled_date=scheduled_date,
            amount=amount,
            actor=principal,
            notes=notes
        )

        booking = await self._bounded(self.bookings.insert_booking(draft), "insert_booking")

        logger.info(
            "Booking created",
            extra={"booking_id": booking.id, "principal_id": principal.id}
        )
        await self._record(self.audit_trail.build_entry(
            principal,
            AuditAction.BOOKING_CREATED,
            entity_type=ENTITY_BOOKING,
            entity_id=booking.id,
            details={
                "user_id": booking.user_id,
                "agent_id": booking.agent_id,
                "service_id": booking.service_id,
                "amount": str(booking.amount),
                "scheduled_date": booking.scheduled_date.isoformat(),
            },
            context=context
        ))
        return booking

    async def transition_booking(
        self,
        principal: Principal,
        booking_id: str,
        target_status: Union[str, BookingStatus],
        context: Optional[RequestContext] = None
    ) -> Booking:
        """
        Move a booking to ``target_status``.

        A move to CANCELLED is authorized as CANCEL, anything else (including
        an unknown literal) as TRANSITION. The literal is parsed only after
        the gate allows the call.
        """
        raw = str(getattr(target_status, "value", target_status)).upper()
        action = PolicyAction.CANCEL if raw == BookingStatus.CANCELLED.value else PolicyAction.TRANSITION

        booking = await self._load(booking_id)
        await self._authorize(
            principal,
            ResourceKind.BOOKING,
            action,
            resource_owner_id=self.gate.owner_id_for(principal, booking),
            entity_id=booking_id,
            context=context
        )

        target = parse_status(target_status, BookingStatus)
        previous = booking.status
        updated = self.state_machine.transition(booking, target, principal)
        saved = await self._save(updated, booking.version)

        logger.info(
            "Booking status changed",
            extra={
                "booking_id": booking_id,
                "from_status": previous.value,
                "to_status": target.value,
                "principal_id": principal.id,
            }
        )
        await self._record(self.audit_trail.build_entry(
            principal,
            STATUS_AUDIT_ACTIONS[target],
            entity_type=ENTITY_BOOKING,
            entity_id=booking_id,
            details={"from_status": previous.value, "to_status": target.value},
            context=context
        ))
        return saved

    async def cancel_booking(
        self,
        principal: Principal,
        booking_id: str,
        context: Optional[RequestContext] = None
    ) -> Booking:
        """Cancel a booking (shorthand for a transition to CANCELLED)."""
        return await self.transition_booking(principal, booking_id, BookingStatus.CANCELLED, context)

    async def update_payment_status(
        self,
        principal: Principal,
        booking_id: str,
        target_payment_status: Union[str, PaymentStatus],
        context: Optional[RequestContext] = None
    ) -> Booking:
        """Move the payment status along PENDING → PAID → REFUNDED."""
        booking = await self._load(booking_id)
        await self._authorize(
            principal,
            ResourceKind.BOOKING,
            PolicyAction.UPDATE_PAYMENT,
            resource_owner_id=self.gate.owner_id_for(principal, booking),
            entity_id=booking_id,
            context=context
        )

        target = parse_status(target_payment_status, PaymentStatus)
        previous = booking.payment_status
        updated = self.state_machine.transition_payment(booking, target)
        saved = await self._save(updated, booking.version)

        await self._record(self.audit_trail.build_entry(
            principal,
            AuditAction.PAYMENT_STATUS_CHANGED,
            entity_type=ENTITY_BOOKING,
            entity_id=booking_id,
            details={"from_status": previous.value, "to_status": target.value},
            context=context
        ))
        return saved

    async def update_booking_details(
        self,
        principal: Principal,
        booking_id: str,
        changes: BookingChanges,
        context: Optional[RequestContext] = None
    ) -> Booking:
        """
        Update payload fields.

        Customers may only change ``notes`` (ANNOTATE); agent fields
        (agent_notes, scheduled_date, amount) require UPDATE.
        """
        provided = changes.provided()
        action = (
            PolicyAction.UPDATE
            if any(name in provided for name in BookingChanges.AGENT_FIELDS)
            else PolicyAction.ANNOTATE
        )

        booking = await self._load(booking_id)
        await self._authorize(
            principal,
            ResourceKind.BOOKING,
            action,
            resource_owner_id=self.gate.owner_id_for(principal, booking),
            entity_id=booking_id,
            context=context
        )

        updated = self.state_machine.apply_details(booking, changes)
        saved = await self._save(updated, booking.version)

        await self._record(self.audit_trail.build_entry(
            principal,
            AuditAction.BOOKING_UPDATED,
            entity_type=ENTITY_BOOKING,
            entity_id=booking_id,
            details={
                "changes": {
                    name: {"before": _jsonable(getattr(booking, name)), "after": _jsonable(value)}
                    for name, value in provided.items()
                }
            },
            context=context
        ))
        return saved

    async def get_booking(self, principal: Principal, booking_id: str) -> Booking:
        booking = await self._load(booking_id)
        await self._authorize(
            principal,
            ResourceKind.BOOKING,
            PolicyAction.READ,
            resource_owner_id=self.gate.owner_id_for(principal, booking),
            entity_id=booking_id
        )
        return booking

    async def list_bookings(
        self,
        principal: Principal,
        filters: Optional[BookingFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Tuple[List[Booking], int]:
        """
        List bookings visible to the principal.

        Users only see their own bookings and agents only the bookings
        assigned to them, whatever filters they pass.
        """
        await self._authorize(principal, ResourceKind.BOOKING, PolicyAction.LIST)
        page, page_size = self._page(page, page_size)

        narrowed = self._narrow(principal, filters)
        if narrowed is None:
            return [], 0
        return await self._bounded(
            self.bookings.list_bookings(narrowed, page, page_size),
            "list_bookings"
        )

    async def booking_summary(self, principal: Principal) -> Dict[str, Any]:
        """Booking counts per status within the principal's visibility."""
        await self._authorize(principal, ResourceKind.BOOKING, PolicyAction.LIST)

        narrowed = self._narrow(principal, None)
        counts = {status: 0 for status in BookingStatus}
        if narrowed is not None:
            counts.update(await self._bounded(
                self.bookings.count_bookings_by_status(narrowed),
                "count_bookings_by_status"
            ))
        return {
            "total": sum(counts.values()),
            "by_status": {status.value: count for status, count in counts.items()},
        }

    async def query_audit_log(
        self,
        principal: Principal,
        filters: Optional[AuditLogFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_by: str = "created_at",
        descending: bool = True,
        context: Optional[RequestContext] = None
    ) -> Tuple[List[AuditLogEntry], int]:
        """Query the audit trail (admins and super admins only)."""
        await self._authorize(principal, ResourceKind.AUDIT_LOG, PolicyAction.READ, context=context)
        page, page_size = self._page(page, page_size)
        return await self._bounded(
            self.audit_trail.query(filters or AuditLogFilters(), page, page_size, sort_by, descending),
            "query_audit_entries"
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value
