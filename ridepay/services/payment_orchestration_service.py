# ridepay/services/payment_orchestration_service.py
"""
Payment Orchestration Service.

The one entry point through which a payment changes status after creation.
Webhooks and the reconciliation sweep both call `handle_payment_status_change`,
so the side effects of a transition are identical whatever triggered it:

- completed: booking -> payment_status=completed / status=pending_verification,
  a fresh verification code, a receipt, passenger SMS and driver push.
- failed: booking -> payment_status=failed / status=cancelled (seats released),
  and a failure SMS with a retry link.

Receipts and notifications run after the status change has been committed and
never undo it.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingPaymentStatus,
    BookingStatus,
    PaymentStatus,
)
from ..core.exceptions import IllegalTransitionException
from ..models.booking import Booking
from ..models.payment import Payment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService
from .payment_service import PaymentService
from .receipt_service import ReceiptService

logger = logging.getLogger(__name__)


@dataclass
class StatusChangeResult:
    payment: Payment
    previous_status: str
    new_status: str
    changed: bool


class PaymentOrchestrationService(BaseService):
    def __init__(
        self,
        db: Session,
        payment_service: Optional[PaymentService] = None,
        receipt_service: Optional[ReceiptService] = None,
        notification_service: Optional[NotificationService] = None,
    ) -> None:
        super().__init__(db)
        self.payment_service = payment_service or PaymentService(db)
        self.receipt_service = receipt_service or ReceiptService(db)
        self.notification_service = notification_service or NotificationService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("handle_payment_status_change")
    def handle_payment_status_change(
        self,
        payment_id: str,
        new_status: str,
        metadata: Optional[Dict[str, Any]] = None,
        source: str = "callback",
    ) -> StatusChangeResult:
        """
        Validate, persist and react to a payment status change.

        Re-delivering a status the payment already has is a no-op: nothing is
        written and no side effect runs again. Illegal transitions raise
        IllegalTransitionException before any write.
        """
        payment = self.payment_service.require_payment(payment_id)
        target = PaymentStatus(new_status).value
        previous = payment.status

        if previous == target:
            self.logger.info(
                "Payment %s already %s; skipping duplicate transition",
                payment_id,
                target,
                extra={"payment_id": payment_id, "source": source},
            )
            return StatusChangeResult(payment, previous, target, changed=False)

        if not PaymentService.validate_state_transition(previous, target):
            self.logger.warning(
                "Rejected payment transition %s -> %s for %s (source=%s)",
                previous,
                target,
                payment_id,
                source,
            )
            raise IllegalTransitionException(previous, target)

        with self.transaction():
            payment = self.payment_service.update_payment_status(
                payment_id, target, {**(metadata or {}), "last_update_source": source}
            )
        prometheus_metrics.record_payment_transition(previous, target, source)
        self.logger.info(
            "Payment %s moved %s -> %s",
            payment_id,
            previous,
            target,
            extra={"payment_id": payment_id, "booking_id": payment.booking_id, "source": source},
        )

        if target == PaymentStatus.COMPLETED.value:
            self.complete_booking_for_payment(payment)
        elif target == PaymentStatus.FAILED.value:
            reason = (metadata or {}).get("error_message") or (metadata or {}).get("reason")
            self._fail_booking_for_payment(payment, reason)

        return StatusChangeResult(payment, previous, target, changed=True)

    def apply_provider_status(
        self,
        payment_id: str,
        mapped_status: str,
        metadata: Optional[Dict[str, Any]] = None,
        source: str = "callback",
    ) -> StatusChangeResult:
        """
        Feed a provider-reported status into the state machine.

        A provider may report success for a payment we never saw move to
        processing; that walks pending -> processing -> completed through two
        legal edges. `pending` is never requested since it would not advance
        anything.
        """
        payment = self.payment_service.require_payment(payment_id)
        target = PaymentStatus(mapped_status).value
        if target == PaymentStatus.PENDING.value or (
            target == PaymentStatus.PROCESSING.value and payment.status == target
        ):
            return StatusChangeResult(payment, payment.status, payment.status, changed=False)

        if (
            target == PaymentStatus.COMPLETED.value
            and payment.status == PaymentStatus.PENDING.value
        ):
            self.handle_payment_status_change(
                payment_id, PaymentStatus.PROCESSING.value, None, source
            )
            result = self.handle_payment_status_change(payment_id, target, metadata, source)
            result.previous_status = PaymentStatus.PENDING.value
            return result

        return self.handle_payment_status_change(payment_id, target, metadata, source)

    # ------------------------------------------------------------------
    # Side-effect workflows
    # ------------------------------------------------------------------

    def complete_booking_for_payment(self, payment: Payment) -> Optional[Booking]:
        """
        Promote the booking owning a completed payment.

        Returns None when the booking row does not exist yet; booking creation
        picks the payment up later.
        """
        verification_code: Optional[str] = None
        with self.transaction():
            booking = self.booking_repository.get_for_update(payment.booking_id)
            if booking is None:
                self.logger.info(
                    "Booking %s not found for completed payment %s; deferring to booking creation",
                    payment.booking_id,
                    payment.id,
                )
                return None
            if booking.status == BookingStatus.CANCELLED.value:
                self.logger.warning(
                    "Payment %s completed for cancelled booking %s; booking left unchanged",
                    payment.id,
                    booking.id,
                )
                return booking

            booking.payment_status = BookingPaymentStatus.COMPLETED.value
            if booking.code_verified:
                booking.touch()
            else:
                booking.status = BookingStatus.PENDING_VERIFICATION.value
                verification_code = self.booking_repository.generate_verification_code(
                    booking.id, settings.verification_code_ttl_hours
                )

        self._create_receipt(payment)
        self._notify(
            "payment_completed",
            lambda: self.notification_service.notify_payment_completed(
                booking, payment, booking.ride, verification_code
            ),
        )
        return booking

    def _fail_booking_for_payment(self, payment: Payment, reason: Optional[str]) -> None:
        with self.transaction():
            booking = self.booking_repository.get_for_update(payment.booking_id)
            if booking is None:
                self.logger.info(
                    "No booking %s for failed payment %s", payment.booking_id, payment.id
                )
                return

            paid = [
                p
                for p in self.payment_repository.get_completed_for_booking(booking.id)
                if p.id != payment.id
            ]
            if paid:
                # A failed top-up leaves an already-paid booking alone.
                self.logger.info(
                    "Top-up payment %s failed; booking %s keeps %d completed payment(s)",
                    payment.id,
                    booking.id,
                    len(paid),
                )
            else:
                if booking.status in ACTIVE_BOOKING_STATUSES:
                    self.booking_repository.cancel_booking_and_restore_seats(booking.id)
                booking.payment_status = BookingPaymentStatus.FAILED.value
                booking.touch()

        self._notify(
            "payment_failed",
            lambda: self.notification_service.notify_payment_failed(booking, payment, reason),
        )

    def _create_receipt(self, payment: Payment) -> None:
        try:
            self.receipt_service.create_receipt(payment.id)
        except Exception as exc:
            self.logger.error(
                "Receipt creation failed for payment %s: %s",
                payment.id,
                exc,
                extra={"payment_id": payment.id, "error_type": type(exc).__name__},
            )

    def _notify(self, label: str, send) -> None:
        try:
            send()
        except Exception as exc:
            self.logger.warning("Notification %s failed: %s", label, exc)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_payment_with_details(self, payment_id: str) -> Dict[str, Any]:
        """Payment plus its booking, ride, driver and receipt (any of which may be None)."""
        payment = self.payment_service.require_payment(payment_id)
        booking = self.booking_repository.get_by_id(payment.booking_id)
        ride = booking.ride if booking is not None else None
        driver = self.user_repository.get_by_id(ride.driver_id) if ride is not None else None
        return {
            "payment": payment,
            "booking": booking,
            "ride": ride,
            "driver": driver,
            "receipt": self.receipt_service.get_receipt_by_payment_id(payment.id),
        }
