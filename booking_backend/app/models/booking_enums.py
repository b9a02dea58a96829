"""
Booking status enumerations.
"""

import enum


class BookingStatus(str, enum.Enum):
    """
    Booking status enumeration.

    Status flow:
        PENDING → CONFIRMED → COMPLETED
        PENDING or CONFIRMED → CANCELLED
        COMPLETED and CANCELLED are terminal
    """
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    """
    Payment status enumeration.

    Status flow:
        PENDING → PAID → REFUNDED (terminal)
    """
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
