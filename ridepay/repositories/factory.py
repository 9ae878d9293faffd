# ridepay/repositories/factory.py
"""
Repository Factory for the ride payment service.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session


# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .payment_repository import PaymentRepository
    from .payout_repository import PayoutRepository
    from .push_subscription_repository import PushSubscriptionRepository
    from .receipt_repository import ReceiptRepository
    from .refund_repository import RefundRepository
    from .ride_repository import RideRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations in tests.
    """

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations and the atomic seat primitives."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_ride_repository(db: Session) -> "RideRepository":
        from .ride_repository import RideRepository

        return RideRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        """Create repository for payment rows."""
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_receipt_repository(db: Session) -> "ReceiptRepository":
        from .receipt_repository import ReceiptRepository

        return ReceiptRepository(db)

    @staticmethod
    def create_payout_repository(db: Session) -> "PayoutRepository":
        """Create repository for driver payouts."""
        from .payout_repository import PayoutRepository

        return PayoutRepository(db)

    @staticmethod
    def create_refund_repository(db: Session) -> "RefundRepository":
        """Create repository for refunds."""
        from .refund_repository import RefundRepository

        return RefundRepository(db)

    @staticmethod
    def create_push_subscription_repository(db: Session) -> "PushSubscriptionRepository":
        from .push_subscription_repository import PushSubscriptionRepository

        return PushSubscriptionRepository(db)
