"""
Audit log retention script.

Deletes audit entries older than AUDIT_RETENTION_DAYS (or --days) and
records the purge itself as an audit entry. Run from cron or by hand;
never called by the API.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from booking_backend.app.core.config import settings
from booking_backend.app.db.audit_store import SqlAuditStore
from booking_backend.app.db.session import AsyncSessionLocal, engine
from booking_backend.app.domain.records import Principal
from booking_backend.app.models.enums import UserRole
from booking_backend.app.services.audit import AuditAction, AuditTrail

SYSTEM_PRINCIPAL = Principal(id="system:retention", role=UserRole.SUPER_ADMIN)


async def purge_audit_log(retention_days: int) -> int:
    """
    Purge entries older than ``retention_days`` days.

    Returns:
        Number of entries removed
    """
    trail = AuditTrail(SqlAuditStore(AsyncSessionLocal), timeout_seconds=settings.audit_timeout_seconds)
    try:
        print(f"🧹 Purging audit entries older than {retention_days} days...")
        removed = await trail.purge_older_than(retention_days)

        await trail.record(trail.build_entry(
            SYSTEM_PRINCIPAL,
            AuditAction.AUDIT_LOG_PURGED,
            entity_type="AuditLog",
            details={"retention_days": retention_days, "removed": removed}
        ))
        print(f"✅ Removed {removed} audit entries")
        return removed
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Purge old audit log entries")
    parser.add_argument("--days", type=int, default=settings.audit_retention_days)
    args = parser.parse_args()
    asyncio.run(purge_audit_log(args.days))
