"""
SQLAlchemy audit store.

Entries are written in their own transaction, independent of the booking
write they describe, so an audit failure can never roll back a booking.
"""

from datetime import datetime
from typing import List, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from booking_backend.app.domain.ports import AuditStore
from booking_backend.app.domain.records import AuditLogEntry, AuditLogFilters, as_utc
from booking_backend.app.models.audit_log import AuditLogRow


def _to_entry(row: AuditLogRow) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        actor_id=row.actor_id,
        action=row.action,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        details=row.details or {},
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=as_utc(row.created_at),
    )


class SqlAuditStore(AuditStore):
    """Audit store backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def append_audit_entry(self, entry: AuditLogEntry) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(AuditLogRow(
                    id=entry.id,
                    actor_id=entry.actor_id,
                    action=entry.action,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    details=entry.details,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    created_at=as_utc(entry.created_at),
                ))

    async def query_audit_entries(
        self,
        filters: AuditLogFilters,
        page: int,
        page_size: int,
        sort_by: str,
        descending: bool
    ) -> Tuple[List[AuditLogEntry], int]:
        conditions = []
        if filters.actor_id:
            conditions.append(AuditLogRow.actor_id == filters.actor_id)
        if filters.action:
            conditions.append(AuditLogRow.action == filters.action)
        if filters.entity_type:
            conditions.append(AuditLogRow.entity_type == filters.entity_type)
        if filters.entity_id:
            conditions.append(AuditLogRow.entity_id == filters.entity_id)
        if filters.date_from:
            conditions.append(AuditLogRow.created_at >= as_utc(filters.date_from))
        if filters.date_to:
            conditions.append(AuditLogRow.created_at <= as_utc(filters.date_to))

        column = getattr(AuditLogRow, sort_by)
        ordering = column.desc() if descending else column.asc()

        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count(AuditLogRow.id)).where(*conditions)
            )

            offset = (page - 1) * page_size
            result = await session.execute(
                select(AuditLogRow)
                .where(*conditions)
                .order_by(ordering, AuditLogRow.created_at.desc(), AuditLogRow.id)
                .offset(offset)
                .limit(page_size)
            )
            return [_to_entry(row) for row in result.scalars().all()], total

    async def delete_audit_entries_before(self, cutoff: datetime) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(AuditLogRow).where(AuditLogRow.created_at < as_utc(cutoff))
                )
                return result.rowcount
