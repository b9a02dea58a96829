"""
Booking state machine tests.

Validates the transition tables, the status history invariants and
payload validation on creation and detail changes.
"""

import pytest
from decimal import Decimal
from booking_backend.app.core.exceptions import BookingValidationError, InvalidTransitionError
from booking_backend.app.domain.bookings.state_machine import (
    BookingStateMachine,
    TERMINAL_STATUSES,
    can_transition,
    is_consistent,
)
from booking_backend.app.domain.records import BookingChanges
from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus


@pytest.fixture
def machine(clock):
    return BookingStateMachine(clock)


@pytest.fixture
def draft(machine, customer, scheduled):
    return machine.create(
        user_id="user-1",
        agent_id="agent-1",
        service_id="svc-1",
        scheduled_date=scheduled,
        amount=Decimal("80"),
        actor=customer,
    )


def test_create_starts_pending(draft, clock):
    assert draft.status == BookingStatus.PENDING
    assert draft.payment_status == PaymentStatus.PENDING
    assert len(draft.status_history) == 1
    assert draft.status_history[0].updated_by == "user-1"
    assert draft.last_status_update == clock.now()
    assert draft.version == 1
    assert is_consistent(draft)


@pytest.mark.parametrize("amount", [Decimal("-0.01"), "abc", "NaN", "Infinity"])
def test_create_rejects_bad_amounts(machine, customer, scheduled, amount):
    with pytest.raises(BookingValidationError):
        machine.create("user-1", "agent-1", "svc-1", scheduled, amount, customer)


def test_create_requires_references(machine, customer, scheduled):
    with pytest.raises(BookingValidationError) as exc_info:
        machine.create("user-1", "", "svc-1", scheduled, Decimal("10"), customer)
    assert exc_info.value.details == {"field": "agent_id"}


def test_zero_amount_is_valid(machine, customer, scheduled):
    booking = machine.create("user-1", "agent-1", "svc-1", scheduled, 0, customer)
    assert booking.amount == Decimal("0")


@pytest.mark.parametrize("current,target,allowed", [
    (BookingStatus.PENDING, BookingStatus.CONFIRMED, True),
    (BookingStatus.PENDING, BookingStatus.CANCELLED, True),
    (BookingStatus.PENDING, BookingStatus.COMPLETED, False),
    (BookingStatus.PENDING, BookingStatus.PENDING, False),
    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, True),
    (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, True),
    (BookingStatus.CONFIRMED, BookingStatus.PENDING, False),
    (BookingStatus.COMPLETED, BookingStatus.CANCELLED, False),
    (BookingStatus.CANCELLED, BookingStatus.CONFIRMED, False),
])
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {BookingStatus.COMPLETED, BookingStatus.CANCELLED}


def test_transition_appends_history(machine, draft, agent, clock):
    clock.advance(30)
    confirmed = machine.transition(draft, "confirmed", agent)

    assert confirmed.status == BookingStatus.CONFIRMED
    assert [entry.status for entry in confirmed.status_history] == [
        BookingStatus.PENDING, BookingStatus.CONFIRMED
    ]
    assert confirmed.status_history[-1].updated_by == "agent-1"
    assert confirmed.last_status_update == clock.now()
    assert is_consistent(confirmed)

    # Input record untouched
    assert draft.status == BookingStatus.PENDING
    assert len(draft.status_history) == 1


def test_invalid_transition_leaves_booking_unchanged(machine, draft, agent):
    with pytest.raises(InvalidTransitionError) as exc_info:
        machine.transition(draft, BookingStatus.COMPLETED, agent)

    assert exc_info.value.details == {"field": "status", "current": "PENDING", "target": "COMPLETED"}
    assert draft.status == BookingStatus.PENDING


def test_terminal_state_rejects_everything(machine, draft, agent):
    cancelled = machine.transition(draft, BookingStatus.CANCELLED, agent)
    for target in BookingStatus:
        with pytest.raises(InvalidTransitionError):
            machine.transition(cancelled, target, agent)


def test_unknown_status_literal(machine, draft, agent):
    with pytest.raises(BookingValidationError) as exc_info:
        machine.transition(draft, "SHIPPED", agent)
    assert "CONFIRMED" in exc_info.value.details["allowed"]


def test_history_stays_ordered_when_clock_steps_back(machine, draft, agent, clock):
    clock.rewind(3600)
    confirmed = machine.transition(draft, BookingStatus.CONFIRMED, agent)

    assert confirmed.status_history[-1].updated_at == draft.status_history[-1].updated_at
    assert is_consistent(confirmed)


def test_payment_flow(machine, draft):
    paid = machine.transition_payment(draft, "PAID")
    refunded = machine.transition_payment(paid, PaymentStatus.REFUNDED)

    assert paid.payment_status == PaymentStatus.PAID
    assert refunded.payment_status == PaymentStatus.REFUNDED
    # Payment changes never touch the status history
    assert refunded.status_history == draft.status_history


@pytest.mark.parametrize("steps", [
    ["REFUNDED"],
    ["PAID", "PAID"],
    ["PAID", "REFUNDED", "PAID"],
])
def test_invalid_payment_moves(machine, draft, steps):
    booking = draft
    with pytest.raises(InvalidTransitionError) as exc_info:
        for step in steps:
            booking = machine.transition_payment(booking, step)
    assert exc_info.value.details["field"] == "payment_status"


def test_apply_details_only_changes_given_fields(machine, draft, clock):
    clock.advance()
    updated = machine.apply_details(draft, BookingChanges(agent_notes="Bring ladder"))

    assert updated.agent_notes == "Bring ladder"
    assert updated.notes == draft.notes
    assert updated.amount == draft.amount
    assert updated.status_history == draft.status_history
    assert updated.updated_at == clock.now()


def test_apply_details_rejects_empty_and_cleared_fields(machine, draft):
    with pytest.raises(BookingValidationError):
        machine.apply_details(draft, BookingChanges())
    with pytest.raises(BookingValidationError):
        machine.apply_details(draft, BookingChanges(amount=None))
    with pytest.raises(BookingValidationError):
        machine.apply_details(draft, BookingChanges(scheduled_date=None))


def test_clearing_notes_is_allowed(machine, draft):
    updated = machine.apply_details(draft, BookingChanges(notes=None))
    assert updated.notes is None
