"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""

from .booking import Booking
from .notification import PushSubscription
from .payment import Payment, PaymentReceipt
from .payout import Payout
from .refund import Refund
from .ride import Ride
from .user import User

__all__ = [
    "Booking",
    "Payment",
    "PaymentReceipt",
    "Payout",
    "PushSubscription",
    "Refund",
    "Ride",
    "User",
]
