# ridepay/services/cancellation_service.py
"""
Cancellation Service.

Cancelling a paid booking is split in two on purpose: one local transaction
(cancel + restore seats + pending refund row) and then the provider refund
call. A provider failure marks the refund row `failed`; it never undoes the
cancellation. Unpaid bookings only need the cancel-and-restore primitive.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.enums import BookingStatus, RefundStatus
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ProviderException,
)
from ..integrations.payment_providers import ProviderResponse, get_provider_client
from ..models.booking import Booking
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

VERIFIED_CANCELLATION_MESSAGE = (
    "Cancellation is not allowed after the driver has verified the code and been paid. "
    "Your trip is confirmed."
)


def ensure_cancellable(booking: Booking, user_id: str) -> None:
    """Owner-only, and never once the driver has verified the code."""
    if booking.user_id != user_id:
        raise ForbiddenException("You can only cancel your own bookings")
    if booking.code_verified:
        raise ForbiddenException(VERIFIED_CANCELLATION_MESSAGE, code="BOOKING_ALREADY_VERIFIED")
    if booking.status == BookingStatus.CANCELLED.value:
        raise BusinessRuleException("Booking is already cancelled", code="BOOKING_ALREADY_CANCELLED")


class CancellationService(BaseService):
    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.refund_repository = RepositoryFactory.create_refund_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("cancel_booking_with_refund")
    def cancel_booking_with_refund(self, booking_id: str, user_id: str) -> Dict[str, Any]:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        ensure_cancellable(booking, user_id)

        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException(
                    "This booking is being processed. Please retry in a moment.",
                    code="BOOKING_LOCKED",
                )
            payments = self.payment_repository.get_completed_for_booking(booking_id)
            if payments:
                result = self._cancel_paid_booking(booking, user_id, payments)
            else:
                result = self._cancel_unpaid_booking(booking)

        self.notification_service.notify_booking_cancelled(
            booking, booking.ride, result["refund_amount"], result["refund_initiated"]
        )
        return result

    def _cancel_unpaid_booking(self, booking: Booking) -> Dict[str, Any]:
        with self.transaction():
            cancelled = self.booking_repository.cancel_booking_and_restore_seats(booking.id)
            if not cancelled:
                raise BusinessRuleException(
                    f"Booking cannot be cancelled in current status: {booking.status}",
                    code="BOOKING_NOT_CANCELLABLE",
                )
        self.logger.info("Cancelled unpaid booking %s", booking.id)
        return {
            "refund_initiated": False,
            "refund_amount": 0.0,
            "refund_record_id": None,
            "cancellation_debug_info": None,
        }

    def _cancel_paid_booking(
        self, booking: Booking, user_id: str, payments: List[Payment]
    ) -> Dict[str, Any]:
        # Seats already given back through reduce-seats were refunded then.
        collected = sum(float(p.amount) for p in payments)
        refunded = self.refund_repository.get_issued_partial_refund_total(booking.id)
        total = round(max(collected - refunded, 0.0), 2)
        latest = payments[0]
        phone = latest.phone_number or self.user_repository.get_phone(user_id)

        with self.transaction():
            prepared = self.booking_repository.cancel_booking_with_refund_preparation(
                booking_id=booking.id,
                user_id=user_id,
                amount=total,
                currency=latest.currency,
                provider=latest.provider,
                phone_number=phone,
                payment_ids=[p.id for p in payments],
            )
            if not prepared.success:
                raise BusinessRuleException(
                    prepared.error_message or "Failed to cancel booking",
                    code="CANCELLATION_FAILED",
                    details={"debug_info": prepared.debug_info},
                )

        self.logger.info(
            "Cancelled paid booking %s; refund %s prepared for %s across %d payment(s)",
            booking.id,
            prepared.refund_record_id,
            total,
            len(payments),
        )

        refund_initiated = False
        if prepared.refund_record_id:
            refund_initiated = self._execute_refund(
                prepared.refund_record_id, latest.provider, total, phone, booking.id
            )

        return {
            "refund_initiated": refund_initiated,
            "refund_amount": total,
            "refund_record_id": prepared.refund_record_id,
            "cancellation_debug_info": prepared.debug_info,
        }

    def _execute_refund(
        self,
        refund_id: str,
        provider: str,
        amount: float,
        phone_number: Optional[str],
        booking_id: str,
    ) -> bool:
        """Call the provider and record the outcome on the refund row."""
        if not phone_number:
            response = ProviderResponse.failure("No phone number available for refund")
        else:
            try:
                response = get_provider_client(provider).refund(
                    amount=amount,
                    phone_number=phone_number,
                    reason=f"Refund - Booking {booking_id}",
                )
            except ProviderException as exc:
                response = ProviderResponse.failure(exc.message)

        with self.transaction():
            refund = self.refund_repository.get_by_id(refund_id)
            if refund is None:
                raise NotFoundException(f"Refund not found: {refund_id}", code="REFUND_NOT_FOUND")
            if response.success:
                refund.status = RefundStatus.PROCESSING.value
                refund.transaction_id = response.transaction_id
                self.refund_repository.merge_metadata(
                    refund,
                    externalApiSuccess=True,
                    apiResponse=response.api_response,
                    refundInitiatedAt=utcnow().isoformat(),
                )
            else:
                refund.status = RefundStatus.FAILED.value
                self.refund_repository.merge_metadata(
                    refund,
                    externalApiSuccess=False,
                    error=response.message,
                    apiResponse=response.api_response,
                )

        if response.success:
            self.logger.info("Refund %s submitted to %s: %s", refund_id, provider, response.transaction_id)
        else:
            self.logger.error(
                "Refund %s for booking %s failed at provider: %s",
                refund_id,
                booking_id,
                response.message,
                extra={"refund_id": refund_id, "booking_id": booking_id},
            )
        return response.success
