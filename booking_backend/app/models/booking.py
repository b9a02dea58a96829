"""
Booking database models.

A booking row plus its append-only status history rows. The ``version``
column is the optimistic concurrency marker checked on every write.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from booking_backend.app.db.session import Base
from booking_backend.app.models.booking_enums import BookingStatus, PaymentStatus


class BookingRow(Base):
    """
    Booking table.

    user_id, agent_id and service_id reference identities owned by other
    systems and are stored as opaque strings.
    """
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)

    # References (immutable)
    user_id = Column(String(64), nullable=False, index=True)
    agent_id = Column(String(64), nullable=False, index=True)
    service_id = Column(String(64), nullable=False, index=True)

    # Status
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    last_status_update = Column(DateTime(timezone=True), nullable=False, index=True)

    # Payload
    scheduled_date = Column(DateTime(timezone=True), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    agent_notes = Column(Text, nullable=True)

    # Optimistic concurrency marker
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    history = relationship(
        "BookingStatusRow",
        order_by="BookingStatusRow.position",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<BookingRow(id={self.id}, status='{self.status.value}', version={self.version})>"


class BookingStatusRow(Base):
    """One entry of a booking's status history. Rows are only ever inserted."""
    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    status = Column(Enum(BookingStatus), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    updated_by = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "position", name="uq_booking_status_position"),
    )

    def __repr__(self):
        return f"<BookingStatusRow(booking_id={self.booking_id}, position={self.position}, status='{self.status.value}')>"
