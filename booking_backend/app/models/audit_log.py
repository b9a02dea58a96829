"""
Audit Log Database Model.

Tracks booking operations and security events. Rows are inserted once and
never updated; only the retention purge deletes them.
"""

from sqlalchemy import Column, String, DateTime, JSON
from booking_backend.app.db.session import Base


class AuditLogRow(Base):
    """
    Audit log table.

    Events logged:
    - BOOKING_CREATED / BOOKING_UPDATED
    - BOOKING_CONFIRMED / BOOKING_COMPLETED / BOOKING_CANCELLED
    - PAYMENT_STATUS_CHANGED
    - AUTHORIZATION_DENIED (security events)
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True)

    # Who performed the action
    actor_id = Column(String(64), nullable=False, index=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    entity_type = Column(String(50), nullable=True, index=True)
    entity_id = Column(String(64), nullable=True, index=True)

    # Additional context (JSON for flexibility)
    details = Column(JSON, nullable=True)

    # Request metadata
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), nullable=True)

    # Timestamp
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLogRow(id={self.id}, action='{self.action}', actor={self.actor_id})>"
