# ridepay/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_user_id
from .database import get_db
from .services import (
    get_booking_service,
    get_callback_service,
    get_payment_creation_service,
    get_payment_reconciliation_service,
    get_payout_reconciliation_service,
    get_payout_service,
    get_reconciliation_sweep_service,
    get_refund_service,
    get_verification_service,
)

__all__ = [
    # Auth
    "get_current_user_id",
    # Database
    "get_db",
    # Services
    "get_booking_service",
    "get_callback_service",
    "get_payment_creation_service",
    "get_payment_reconciliation_service",
    "get_payout_reconciliation_service",
    "get_payout_service",
    "get_reconciliation_sweep_service",
    "get_refund_service",
    "get_verification_service",
]
