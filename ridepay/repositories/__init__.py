# ridepay/repositories/__init__.py
"""
Repository Pattern Implementation for the ride payment service.

This package provides the repository layer for data access,
separating business logic from database queries.

Key Components:
- BaseRepository: lookups, inserts, row locks and JSON metadata merging
- RepositoryFactory: Factory for creating repository instances
- BookingRepository: Bookings plus the atomic seat, cancellation and verification primitives
- PaymentRepository / PayoutRepository / RefundRepository / ReceiptRepository: money movement rows

Usage:
    from ridepay.repositories import RepositoryFactory

    repository = RepositoryFactory.create_booking_repository(db)
    result = repository.reserve_ride_seats(ride_id, user_id, seats=2)
"""

from .base_repository import BaseRepository
from .booking_repository import (
    BookingRepository,
    CancellationPreparationResult,
    SeatReservationResult,
    VerificationCodeInfo,
)
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository
from .payout_repository import PayoutRepository
from .push_subscription_repository import PushSubscriptionRepository
from .receipt_repository import ReceiptRepository
from .refund_repository import RefundRepository
from .ride_repository import RideRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "RepositoryFactory",
    "BookingRepository",
    "CancellationPreparationResult",
    "SeatReservationResult",
    "VerificationCodeInfo",
    "PaymentRepository",
    "PayoutRepository",
    "PushSubscriptionRepository",
    "ReceiptRepository",
    "RefundRepository",
    "RideRepository",
    "UserRepository",
]
