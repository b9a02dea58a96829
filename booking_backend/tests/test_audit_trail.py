"""
Audit trail tests.

Validates entry recording, filtered queries, failure reporting and the
retention purge.
"""

import asyncio
import pytest
from datetime import timedelta
from booking_backend.app.core.exceptions import AuditWriteError, BookingValidationError
from booking_backend.app.db.memory import InMemoryAuditStore
from booking_backend.app.domain.records import AuditLogFilters, RequestContext
from booking_backend.app.services.audit import AuditAction, AuditTrail


async def _seed(trail, clock, customer, agent):
    await trail.record(trail.build_entry(customer, AuditAction.BOOKING_CREATED, "Booking", "b-1"))
    clock.advance()
    await trail.record(trail.build_entry(agent, AuditAction.BOOKING_CONFIRMED, "Booking", "b-1"))
    clock.advance()
    await trail.record(trail.build_entry(customer, AuditAction.BOOKING_CREATED, "Booking", "b-2"))


def test_requires_a_store():
    with pytest.raises(ValueError):
        AuditTrail(None)


def test_build_entry_stamps_context(audit_trail, customer, clock):
    entry = audit_trail.build_entry(
        customer,
        AuditAction.BOOKING_CREATED,
        entity_type="Booking",
        entity_id="b-1",
        details={"amount": "10.00"},
        context=RequestContext(ip_address="10.0.0.7", user_agent="pytest"),
    )

    assert entry.actor_id == "user-1"
    assert entry.created_at == clock.now()
    assert entry.ip_address == "10.0.0.7"
    assert entry.user_agent == "pytest"
    assert entry.details == {"amount": "10.00"}


async def test_query_filters_and_order(audit_trail, clock, customer, agent):
    await _seed(audit_trail, clock, customer, agent)

    entries, total = await audit_trail.query(AuditLogFilters(entity_id="b-1"))
    assert total == 2
    # Most recent first
    assert [e.action for e in entries] == [AuditAction.BOOKING_CONFIRMED, AuditAction.BOOKING_CREATED]

    entries, total = await audit_trail.query(
        AuditLogFilters(actor_id="user-1", action=AuditAction.BOOKING_CREATED)
    )
    assert total == 2
    assert {e.entity_id for e in entries} == {"b-1", "b-2"}

    entries, total = await audit_trail.query(AuditLogFilters(), descending=False, page_size=1)
    assert total == 3
    assert entries[0].entity_id == "b-1"
    assert entries[0].action == AuditAction.BOOKING_CREATED


async def test_query_date_range(audit_trail, clock, customer, agent):
    start = clock.now()
    await _seed(audit_trail, clock, customer, agent)

    entries, total = await audit_trail.query(
        AuditLogFilters(date_from=start + timedelta(seconds=30), date_to=clock.now())
    )
    assert total == 2
    assert all(e.created_at > start for e in entries)


async def test_query_rejects_bad_arguments(audit_trail):
    with pytest.raises(BookingValidationError):
        await audit_trail.query(AuditLogFilters(), sort_by="details")
    with pytest.raises(BookingValidationError):
        await audit_trail.query(AuditLogFilters(), page=0)

    now = audit_trail.clock.now()
    with pytest.raises(BookingValidationError):
        await audit_trail.query(AuditLogFilters(date_from=now, date_to=now - timedelta(days=1)))


async def test_in_memory_store_matches_sql_semantics(clock, customer, agent):
    trail = AuditTrail(InMemoryAuditStore(), clock)
    await _seed(trail, clock, customer, agent)

    entries, total = await trail.query(AuditLogFilters(entity_id="b-1"))
    assert total == 2
    assert entries[0].action == AuditAction.BOOKING_CONFIRMED

    entries, _ = await trail.query(AuditLogFilters(), sort_by="actor_id", descending=False)
    assert [e.actor_id for e in entries] == ["agent-1", "user-1", "user-1"]


async def test_store_failure_is_reported(audit_trail, audit_store, customer, mocker):
    mocker.patch.object(audit_store, "append_audit_entry", side_effect=RuntimeError("disk full"))

    with pytest.raises(AuditWriteError) as exc_info:
        await audit_trail.record(audit_trail.build_entry(customer, AuditAction.BOOKING_CREATED))

    assert exc_info.value.error_code == "ERR_AUDIT_001"
    assert "disk full" in exc_info.value.message


async def test_slow_store_times_out(clock, customer):
    class SlowStore(InMemoryAuditStore):
        async def append_audit_entry(self, entry):
            await asyncio.sleep(1)

    trail = AuditTrail(SlowStore(), clock, timeout_seconds=0.05)
    with pytest.raises(AuditWriteError) as exc_info:
        await trail.record(trail.build_entry(customer, AuditAction.BOOKING_CREATED))
    assert "timed out" in exc_info.value.message


async def test_purge_older_than(audit_trail, clock, customer, agent):
    await _seed(audit_trail, clock, customer, agent)
    clock.advance(timedelta(days=30).total_seconds())
    await audit_trail.record(audit_trail.build_entry(agent, AuditAction.BOOKING_COMPLETED, "Booking", "b-1"))

    removed = await audit_trail.purge_older_than(7)

    assert removed == 3
    entries, total = await audit_trail.query(AuditLogFilters())
    assert total == 1
    assert entries[0].action == AuditAction.BOOKING_COMPLETED


async def test_purge_rejects_non_positive_retention(audit_trail):
    with pytest.raises(BookingValidationError):
        await audit_trail.purge_older_than(0)
