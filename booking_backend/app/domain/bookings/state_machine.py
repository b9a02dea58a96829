"""
Booking State Machine (Domain Logic).

Owns booking status transitions, payment status transitions and the
status history. Pure: takes a booking and returns a new one, never
touches storage.
"""

import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, FrozenSet, Optional, Type, TypeVar, Union

from booking_backend.app.core.exceptions import BookingValidationError, InvalidTransitionError
from booking_backend.app.domain.ports import Clock, SystemClock
from booking_backend.app.domain.records import (
    Booking,
    BookingChanges,
    Principal,
    StatusHistoryEntry,
    as_utc,
)
from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus

E = TypeVar("E", BookingStatus, PaymentStatus)

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)


def parse_status(value: Union[str, E], enum_cls: Type[E]) -> E:
    """
    Parse a status literal into ``enum_cls``.

    Raises:
        BookingValidationError: if the literal is not a member
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise BookingValidationError(
            f"Unknown {enum_cls.__name__} '{value}'",
            details={"allowed": [member.value for member in enum_cls]}
        )


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, frozenset())


def is_consistent(booking: Booking) -> bool:
    """
    Check the status history invariants.

    - history is non-empty
    - its last entry carries the current status
    - entries are in non-decreasing updated_at order
    - last_status_update equals the last entry's time
    """
    history = booking.status_history
    if not history:
        return False
    if history[-1].status != booking.status:
        return False
    if booking.last_status_update != history[-1].updated_at:
        return False
    return all(a.updated_at <= b.updated_at for a, b in zip(history, history[1:]))


class BookingStateMachine:
    """Status lifecycle of a booking."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def _stamp(self, booking: Optional[Booking] = None) -> datetime:
        # History must stay ordered even if the clock steps backwards
        now = self.clock.now()
        if booking is not None and booking.status_history:
            last = booking.status_history[-1].updated_at
            if now < last:
                return last
        return now

    def create(
        self,
        user_id: str,
        agent_id: str,
        service_id: str,
        scheduled_date: datetime,
        amount: Decimal,
        actor: Principal,
        notes: Optional[str] = None
    ) -> Booking:
        """
        Create a new PENDING booking with a one-element status history.

        Raises:
            BookingValidationError: on a negative amount or missing references
        """
        for name, value in (("user_id", user_id), ("agent_id", agent_id), ("service_id", service_id)):
            if not value:
                raise BookingValidationError(f"{name} is required", details={"field": name})
        if not isinstance(scheduled_date, datetime):
            raise BookingValidationError("scheduled_date must be a datetime", details={"field": "scheduled_date"})

        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise BookingValidationError("amount must be a number", details={"field": "amount"})
        if not amount.is_finite() or amount < 0:
            raise BookingValidationError("amount must be a non-negative number", details={"field": "amount"})

        now = self._stamp()
        return Booking(
            id=str(uuid.uuid4()),
            user_id=user_id,
            agent_id=agent_id,
            service_id=service_id,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            scheduled_date=as_utc(scheduled_date),
            amount=amount,
            notes=notes,
            status_history=(
                StatusHistoryEntry(status=BookingStatus.PENDING, updated_at=now, updated_by=actor.id),
            ),
            last_status_update=now,
            version=1,
            created_at=now,
            updated_at=now,
        )

    def transition(
        self,
        booking: Booking,
        target_status: Union[str, BookingStatus],
        actor: Principal
    ) -> Booking:
        """
        Move a booking to ``target_status``.

        The status, the appended history entry and last_status_update are
        written together into one new record.

        Raises:
            BookingValidationError: unknown status literal
            InvalidTransitionError: target not reachable (including from terminal states)
        """
        target = parse_status(target_status, BookingStatus)
        if not can_transition(booking.status, target):
            raise InvalidTransitionError(booking.status.value, target.value)

        now = self._stamp(booking)
        entry = StatusHistoryEntry(status=target, updated_at=now, updated_by=actor.id)
        return booking.model_copy(update={
            "status": target,
            "status_history": booking.status_history + (entry,),
            "last_status_update": now,
            "updated_at": now,
        })

    def transition_payment(
        self,
        booking: Booking,
        target_payment_status: Union[str, PaymentStatus]
    ) -> Booking:
        """
        Move the payment status along PENDING → PAID → REFUNDED.

        Raises:
            BookingValidationError: unknown payment status literal
            InvalidTransitionError: any other move
        """
        target = parse_status(target_payment_status, PaymentStatus)
        if target not in PAYMENT_TRANSITIONS.get(booking.payment_status, frozenset()):
            raise InvalidTransitionError(
                booking.payment_status.value, target.value, field="payment_status"
            )
        return booking.model_copy(update={
            "payment_status": target,
            "updated_at": self._stamp(booking),
        })

    def apply_details(self, booking: Booking, changes: BookingChanges) -> Booking:
        """Apply payload field changes; the status history is untouched."""
        provided = changes.provided()
        if not provided:
            raise BookingValidationError("No fields to update")
        if "amount" in provided and provided["amount"] is None:
            raise BookingValidationError("amount cannot be cleared", details={"field": "amount"})
        if "scheduled_date" in provided and provided["scheduled_date"] is None:
            raise BookingValidationError("scheduled_date cannot be cleared", details={"field": "scheduled_date"})
        if provided.get("scheduled_date") is not None:
            provided["scheduled_date"] = as_utc(provided["scheduled_date"])
        return booking.model_copy(update={**provided, "updated_at": self._stamp(booking)})
