"""
SQLAlchemy booking store.

Each call is its own unit of work on a fresh session. Writes are
conditioned on the stored version (optimistic concurrency control).
"""

from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from booking_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from booking_backend.app.domain.ports import BookingStore
from booking_backend.app.domain.records import Booking, BookingFilters, StatusHistoryEntry, as_utc
from booking_backend.app.models.booking import BookingRow, BookingStatusRow
from booking_backend.app.models.booking_enums import BookingStatus


def _to_record(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        user_id=row.user_id,
        agent_id=row.agent_id,
        service_id=row.service_id,
        status=row.status,
        payment_status=row.payment_status,
        scheduled_date=as_utc(row.scheduled_date),
        amount=row.amount,
        notes=row.notes,
        agent_notes=row.agent_notes,
        status_history=tuple(
            StatusHistoryEntry(
                status=entry.status,
                updated_at=as_utc(entry.updated_at),
                updated_by=entry.updated_by,
            )
            for entry in row.history
        ),
        last_status_update=as_utc(row.last_status_update),
        version=row.version,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _status_row(booking_id: str, position: int, entry: StatusHistoryEntry) -> BookingStatusRow:
    return BookingStatusRow(
        booking_id=booking_id,
        position=position,
        status=entry.status,
        updated_at=as_utc(entry.updated_at),
        updated_by=entry.updated_by,
    )


def _conditions(filters: BookingFilters) -> list:
    conditions = []
    if filters.status:
        conditions.append(BookingRow.status == filters.status)
    if filters.payment_status:
        conditions.append(BookingRow.payment_status == filters.payment_status)
    if filters.user_id:
        conditions.append(BookingRow.user_id == filters.user_id)
    if filters.agent_id:
        conditions.append(BookingRow.agent_id == filters.agent_id)
    if filters.service_id:
        conditions.append(BookingRow.service_id == filters.service_id)
    if filters.scheduled_from:
        conditions.append(BookingRow.scheduled_date >= as_utc(filters.scheduled_from))
    if filters.scheduled_to:
        conditions.append(BookingRow.scheduled_date <= as_utc(filters.scheduled_to))
    return conditions


class SqlBookingStore(BookingStore):
    """Booking store backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def load_booking(self, booking_id: str) -> Optional[Booking]:
        async with self.session_factory() as session:
            row = await session.get(BookingRow, booking_id)
            return _to_record(row) if row else None

    async def insert_booking(self, booking: Booking) -> Booking:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(BookingRow(
                    id=booking.id,
                    user_id=booking.user_id,
                    agent_id=booking.agent_id,
                    service_id=booking.service_id,
                    status=booking.status,
                    payment_status=booking.payment_status,
                    last_status_update=as_utc(booking.last_status_update),
                    scheduled_date=as_utc(booking.scheduled_date),
                    amount=booking.amount,
                    notes=booking.notes,
                    agent_notes=booking.agent_notes,
                    version=booking.version,
                    created_at=as_utc(booking.created_at),
                    updated_at=as_utc(booking.updated_at),
                ))
                # Flush the parent first so history rows satisfy the foreign key
                await session.flush()
                for position, entry in enumerate(booking.status_history):
                    session.add(_status_row(booking.id, position, entry))
        return booking

    async def save_booking(self, booking: Booking, expected_version: int) -> Booking:
        """
        Compare-and-set write.

        Raises:
            ConflictError: stored version differs from expected_version
            ResourceNotFoundError: booking no longer exists
        """
        new_version = expected_version + 1
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(BookingRow)
                    .where(BookingRow.id == booking.id, BookingRow.version == expected_version)
                    .values(
                        status=booking.status,
                        payment_status=booking.payment_status,
                        last_status_update=as_utc(booking.last_status_update),
                        scheduled_date=as_utc(booking.scheduled_date),
                        amount=booking.amount,
                        notes=booking.notes,
                        agent_notes=booking.agent_notes,
                        updated_at=as_utc(booking.updated_at),
                        version=new_version,
                    )
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount != 1:
                    exists = await session.scalar(
                        select(func.count(BookingRow.id)).where(BookingRow.id == booking.id)
                    )
                    if not exists:
                        raise ResourceNotFoundError("Booking", booking.id)
                    raise ConflictError("Booking", booking.id, expected_version)

                # Append only the history entries not stored yet
                stored = await session.scalar(
                    select(func.count(BookingStatusRow.id)).where(BookingStatusRow.booking_id == booking.id)
                )
                for position in range(stored, len(booking.status_history)):
                    session.add(_status_row(booking.id, position, booking.status_history[position]))

        return booking.model_copy(update={"version": new_version})

    async def list_bookings(
        self,
        filters: BookingFilters,
        page: int,
        page_size: int
    ) -> Tuple[List[Booking], int]:
        conditions = _conditions(filters)
        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count(BookingRow.id)).where(*conditions)
            )

            offset = (page - 1) * page_size
            result = await session.execute(
                select(BookingRow)
                .where(*conditions)
                .order_by(BookingRow.created_at.desc(), BookingRow.id)
                .offset(offset)
                .limit(page_size)
            )
            rows = result.scalars().all()
            return [_to_record(row) for row in rows], total

    async def count_bookings_by_status(self, filters: BookingFilters) -> Dict[BookingStatus, int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BookingRow.status, func.count(BookingRow.id))
                .where(*_conditions(filters))
                .group_by(BookingRow.status)
            )
            return {status: count for status, count in result.all()}

