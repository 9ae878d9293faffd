# ridepay/services/payout_service.py
"""
Payout Service.

Releases the driver's earnings once the rider's verification code has been
checked. One payout per booking: the booking mutex serializes concurrent
verifications and the unique booking_id on payouts backs it up. Failed
disbursements are stored as `failed` payout rows so they stay visible.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.config import settings
from ..core.enums import (
    BookingPaymentStatus,
    BookingStatus,
    NotificationSource,
    PaymentProvider,
    PayoutStatus,
)
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ProviderException,
    RepositoryException,
    ValidationException,
)
from ..integrations.payment_providers import ProviderResponse, get_provider_client, resolve_provider
from ..models.booking import Booking
from ..models.payment import Payment
from ..models.payout import Payout
from ..repositories.factory import RepositoryFactory
from ..utils.phone import is_orange_phone_number
from ..utils.time import utcnow
from .base import BaseService
from .fee_calculator import calculate_driver_earnings
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

_PAYABLE = (BookingPaymentStatus.COMPLETED.value, BookingPaymentStatus.PARTIAL.value)
_UNCONFIRMED = (BookingStatus.PENDING.value, BookingStatus.PENDING_VERIFICATION.value)


def payout_provider_for(phone_number: Optional[str]) -> PaymentProvider:
    """Disburse on the network the driver's number belongs to."""
    return PaymentProvider.ORANGE if is_orange_phone_number(phone_number) else PaymentProvider.MTN


class PayoutService(BaseService):
    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.payout_repository = RepositoryFactory.create_payout_repository(db)
        self.refund_repository = RepositoryFactory.create_refund_repository(db)
        self.ride_repository = RepositoryFactory.create_ride_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("verify_code_and_handle_payout")
    def verify_code_and_handle_payout(
        self, booking_id: str, driver_id: str, code: str
    ) -> Dict[str, Any]:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        if booking.ride is None or booking.ride.driver_id != driver_id:
            raise ForbiddenException("Only the driver can verify this booking")
        if booking.payment_status not in _PAYABLE:
            raise ValidationException("Booking has not been paid", code="BOOKING_NOT_PAID")

        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException(
                    "Verification already in progress for this booking", code="BOOKING_LOCKED"
                )

            existing = self.payout_repository.get_by_booking_id(booking_id)
            if existing is not None:
                self.logger.info("Booking %s already paid out (%s)", booking_id, existing.id)
                return self._already_paid_out(existing)

            self._verify_code(booking, code)
            return self._pay_driver(booking, driver_id)

    def _verify_code(self, booking: Booking, code: str) -> None:
        if booking.code_verified:
            # Verified earlier but no payout was recorded; the code must still match.
            if (booking.verification_code or "").upper() != (code or "").strip().upper():
                raise ValidationException("Invalid or expired verification code", code="INVALID_CODE")
            return
        with self.transaction():
            if not self.booking_repository.verify_booking_code(booking.id, code):
                raise ValidationException("Invalid or expired verification code", code="INVALID_CODE")
            if booking.status in _UNCONFIRMED:
                booking.status = BookingStatus.CONFIRMED.value
                booking.touch()
        self.logger.info("Verification code accepted for booking %s", booking.id)

    def _gross_amount(self, booking: Booking, payments: List[Payment]) -> float:
        """What the rider paid for the seats still booked, net of seat-reduction refunds."""
        collected = sum(float(p.amount) for p in payments)
        refunded = self.refund_repository.get_issued_partial_refund_total(booking.id)
        total = round(max(collected - refunded, 0.0), 2)
        if collected == 0 and booking.payment_status == BookingPaymentStatus.PARTIAL.value:
            price = self.ride_repository.get_price(booking.ride_id) or 0.0
            total = round(booking.seats * price, 2)
        return total

    def _pay_driver(self, booking: Booking, driver_id: str) -> Dict[str, Any]:
        payments = self.payment_repository.get_completed_for_booking(booking.id)
        earnings = calculate_driver_earnings(self._gross_amount(booking, payments))
        driver_phone = self.user_repository.get_phone(driver_id)
        provider = resolve_provider(payout_provider_for(driver_phone))
        reason = f"Ride Payment - Booking {booking.id} ({len(payments)} payments)"

        if not driver_phone:
            response = ProviderResponse.failure("Driver phone number is missing")
        elif earnings["driver_earnings"] <= 0:
            response = ProviderResponse.failure("Nothing to pay out after fees")
        else:
            try:
                response = get_provider_client(provider).payout(
                    amount=earnings["driver_earnings"], phone_number=driver_phone, reason=reason
                )
            except ProviderException as exc:
                response = ProviderResponse.failure(exc.message)

        status = PayoutStatus.PROCESSING if response.success else PayoutStatus.FAILED
        try:
            with self.transaction():
                payout = self.payout_repository.create(
                    booking_id=booking.id,
                    driver_id=driver_id,
                    amount=earnings["driver_earnings"],
                    original_amount=earnings["original_amount"],
                    transaction_fee=earnings["transaction_fee"],
                    commission=earnings["commission"],
                    currency=payments[0].currency if payments else settings.default_currency,
                    provider=provider.value,
                    phone_number=driver_phone,
                    transaction_id=response.transaction_id,
                    reason=reason,
                    status=status.value,
                    error_message=None if response.success else response.message,
                    metadata_={
                        "payment_ids": [p.id for p in payments],
                        "payment_count": len(payments),
                        "individual_amounts": [float(p.amount) for p in payments],
                        "apiResponse": response.api_response,
                        "payoutInitiatedAt": utcnow().isoformat(),
                        "providerStatus": response.status,
                        "providerReason": response.reason,
                        "retryCount": 0,
                    },
                )
        except RepositoryException:
            existing = self.payout_repository.get_by_booking_id(booking.id)
            if existing is None:
                raise
            return self._already_paid_out(existing)

        if response.success:
            self.logger.info(
                "Payout %s of %s initiated for booking %s",
                payout.id,
                payout.amount,
                booking.id,
                extra={"payout_id": payout.id, "transaction_id": payout.transaction_id},
            )
        else:
            self.logger.error(
                "Payout for booking %s failed: %s", booking.id, response.message,
                extra={"payout_id": payout.id, "provider": provider.value},
            )
            self.notification_service.send_payout_notification_if_needed(
                payout, PayoutStatus.FAILED.value, NotificationSource.INITIAL, response.message
            )

        return {
            "payout_initiated": response.success,
            "payout_id": payout.id,
            "driver_earnings": earnings["driver_earnings"],
            "payment_count": len(payments),
            "already_paid_out": False,
            "message": response.message,
        }

    @staticmethod
    def _already_paid_out(payout: Payout) -> Dict[str, Any]:
        return {
            "payout_initiated": False,
            "payout_id": payout.id,
            "driver_earnings": float(payout.amount),
            "payment_count": int((payout.metadata_ or {}).get("payment_count") or 0),
            "already_paid_out": True,
            "message": "Payout already exists for this booking",
        }
