# ridepay/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each factory builds a service on the request's database session. Services
that share a request are wired together so side effects (notifications,
receipts, booking promotion) go through one orchestrator.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_service import BookingService
from ...services.callback_service import CallbackService
from ...services.cancellation_service import CancellationService
from ...services.notification_service import NotificationService
from ...services.payment_creation_service import PaymentCreationService
from ...services.payment_orchestration_service import PaymentOrchestrationService
from ...services.payment_reconciliation_service import PaymentReconciliationService
from ...services.payout_reconciliation_service import PayoutReconciliationService
from ...services.payout_service import PayoutService
from ...services.reconciliation_sweep_service import ReconciliationSweepService
from ...services.refund_service import RefundService
from ...services.verification_service import VerificationService
from .database import get_db

logger = logging.getLogger(__name__)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_orchestration_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> PaymentOrchestrationService:
    return PaymentOrchestrationService(db, notification_service=notification_service)


def get_cancellation_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CancellationService:
    return CancellationService(db, notification_service=notification_service)


def get_booking_service(
    db: Session = Depends(get_db),
    orchestration_service: PaymentOrchestrationService = Depends(get_orchestration_service),
    cancellation_service: CancellationService = Depends(get_cancellation_service),
) -> BookingService:
    """
    Get booking service instance with all dependencies.

    Args:
        db: Database session
        orchestration_service: Promotes bookings whose payment already completed
        cancellation_service: Handles cancellation and refunds

    Returns:
        BookingService instance
    """
    return BookingService(
        db,
        orchestration_service=orchestration_service,
        cancellation_service=cancellation_service,
    )


def get_refund_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> RefundService:
    return RefundService(db, notification_service=notification_service)


def get_verification_service(db: Session = Depends(get_db)) -> VerificationService:
    return VerificationService(db)


def get_payout_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> PayoutService:
    return PayoutService(db, notification_service=notification_service)


def get_payment_creation_service(
    db: Session = Depends(get_db),
    orchestration_service: PaymentOrchestrationService = Depends(get_orchestration_service),
) -> PaymentCreationService:
    return PaymentCreationService(
        db,
        payment_service=orchestration_service.payment_service,
        orchestration_service=orchestration_service,
    )


def get_payment_reconciliation_service(
    db: Session = Depends(get_db),
    orchestration_service: PaymentOrchestrationService = Depends(get_orchestration_service),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(db, orchestration_service=orchestration_service)


def get_payout_reconciliation_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> PayoutReconciliationService:
    return PayoutReconciliationService(db, notification_service=notification_service)


def get_reconciliation_sweep_service(
    db: Session = Depends(get_db),
    payment_reconciliation: PaymentReconciliationService = Depends(
        get_payment_reconciliation_service
    ),
    payout_reconciliation: PayoutReconciliationService = Depends(get_payout_reconciliation_service),
) -> ReconciliationSweepService:
    return ReconciliationSweepService(
        db,
        payment_reconciliation=payment_reconciliation,
        payout_reconciliation=payout_reconciliation,
    )


def get_callback_service(
    db: Session = Depends(get_db),
    orchestration_service: PaymentOrchestrationService = Depends(get_orchestration_service),
    payout_reconciliation: PayoutReconciliationService = Depends(get_payout_reconciliation_service),
) -> CallbackService:
    return CallbackService(
        db,
        orchestration_service=orchestration_service,
        payout_reconciliation=payout_reconciliation,
    )
