# ridepay/core/enums.py
"""
Core enums for the ride payment service.

Status vocabularies for bookings, payments, payouts and refunds, plus the
provider identifiers the adapters and callbacks agree on.
"""

from enum import Enum


class UserRole(str, Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"


class RideStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"  # paid, waiting for driver code check
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingPaymentStatus(str, Enum):
    """Payment progress as seen from the booking."""

    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    PARTIAL_REFUND = "partial_refund"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Status of a single collection attempt."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class PaymentProvider(str, Enum):
    MTN = "mtn"
    ORANGE = "orange"
    PAWAPAY = "pawapay"

    @classmethod
    def parse(cls, value: "str | PaymentProvider | None") -> "PaymentProvider":
        """Accept the loose spellings clients send (MTN, mtn_momo, orange_money...)."""
        if isinstance(value, PaymentProvider):
            return value
        normalized = (value or "").strip().lower()
        if normalized.startswith("mtn"):
            return cls.MTN
        if normalized.startswith("orange"):
            return cls.ORANGE
        if normalized.startswith("pawa"):
            return cls.PAWAPAY
        raise ValueError(f"Unsupported payment provider: {value!r}")


class NotificationSource(str, Enum):
    """Which path triggered a payout notification."""

    CALLBACK = "callback"
    CRON = "cron"
    STATUS_CHECK = "status-check"
    INITIAL = "initial"


# Statuses a booking can be in while it still holds seats for its rider.
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.PENDING_VERIFICATION.value,
    BookingStatus.CONFIRMED.value,
)

# Booking payment statuses that count as "money was collected".
PAID_BOOKING_PAYMENT_STATUSES = (
    BookingPaymentStatus.COMPLETED.value,
    BookingPaymentStatus.PARTIAL.value,
    BookingPaymentStatus.PARTIAL_REFUND.value,
)

# Paid up for every booked seat; extra seats are charged as a delta.
FULLY_PAID_BOOKING_PAYMENT_STATUSES = (
    BookingPaymentStatus.COMPLETED.value,
    BookingPaymentStatus.PARTIAL_REFUND.value,
)

NON_TERMINAL_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)
