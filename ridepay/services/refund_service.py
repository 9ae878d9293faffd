"""Seat reduction on a paid booking, refunding the released seats."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.config import settings
from ..core.enums import BookingPaymentStatus, PaymentProvider, RefundStatus, RefundType
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ProviderException,
    ValidationException,
)
from ..integrations.payment_providers import ProviderResponse, get_provider_client
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService
from .cancellation_service import VERIFIED_CANCELLATION_MESSAGE
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class RefundService(BaseService):
    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.refund_repository = RepositoryFactory.create_refund_repository(db)
        self.ride_repository = RepositoryFactory.create_ride_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("reduce_seats_with_refund")
    def reduce_seats_with_refund(
        self, booking_id: str, user_id: str, new_seats: int
    ) -> Dict[str, Any]:
        """
        Shrink a fully paid booking and refund `(old - new) * price`.

        Seats go back to the ride in the same transaction as the booking
        change. The provider refund runs afterwards; its outcome is recorded
        as a `processing` or `failed` partial refund row.
        """
        if new_seats < 1:
            raise ValidationException("A booking must keep at least one seat", code="INVALID_SEATS")
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        if booking.user_id != user_id:
            raise ForbiddenException("You can only modify your own bookings")
        if booking.code_verified:
            raise ForbiddenException(VERIFIED_CANCELLATION_MESSAGE, code="BOOKING_ALREADY_VERIFIED")
        if new_seats >= booking.seats:
            raise ValidationException("Use booking update to add seats", code="NOT_A_REDUCTION")
        if booking.payment_status != BookingPaymentStatus.COMPLETED.value:
            raise ValidationException(
                "Only fully paid bookings can be reduced with a refund", code="BOOKING_NOT_PAID"
            )
        price = self.ride_repository.get_price(booking.ride_id)
        if price is None:
            raise ValidationException("Ride price not found", code="RIDE_PRICE_NOT_FOUND")

        previous_seats = booking.seats
        refund_amount = round((previous_seats - new_seats) * price, 2)

        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictException(
                    "This booking is being processed. Please retry in a moment.",
                    code="BOOKING_LOCKED",
                )
            with self.transaction():
                self.booking_repository.reduce_booking_seats(booking_id, new_seats)

            payments = self.payment_repository.get_completed_for_booking(booking_id)
            payment = payments[0] if payments else None
            phone = (payment.phone_number if payment else None) or self.user_repository.get_phone(
                user_id
            )
            if payment is None:
                response = ProviderResponse.failure("No completed payment found for booking")
            elif not phone:
                response = ProviderResponse.failure("No phone number available for refund")
            else:
                try:
                    response = get_provider_client(payment.provider).refund(
                        amount=refund_amount,
                        phone_number=phone,
                        reason=f"Partial refund - Booking {booking_id}",
                    )
                except ProviderException as exc:
                    response = ProviderResponse.failure(exc.message)

            with self.transaction():
                refund = self.refund_repository.create(
                    booking_id=booking_id,
                    user_id=user_id,
                    payment_id=payment.id if payment else None,
                    amount=refund_amount,
                    currency=payment.currency if payment else settings.default_currency,
                    provider=payment.provider if payment else PaymentProvider.MTN.value,
                    phone_number=phone,
                    refund_type=RefundType.PARTIAL.value,
                    status=(
                        RefundStatus.PROCESSING.value
                        if response.success
                        else RefundStatus.FAILED.value
                    ),
                    transaction_id=response.transaction_id if response.success else None,
                    reason=f"Seat reduction from {previous_seats} to {new_seats}",
                    metadata_={
                        "previous_seats": previous_seats,
                        "new_seats": new_seats,
                        "price_per_seat": price,
                        "externalApiSuccess": response.success,
                        "apiResponse": response.api_response,
                        "error": None if response.success else response.message,
                        "requestedAt": utcnow().isoformat(),
                    },
                )
                if payment is not None and response.success:
                    meta = payment.metadata_ or {}
                    self.payment_repository.merge_metadata(
                        payment,
                        refunded_amount=round(float(meta.get("refunded_amount") or 0) + refund_amount, 2),
                        refund_ids=[*(meta.get("refund_ids") or []), refund.id],
                    )

        if response.success:
            self.logger.info(
                "Partial refund %s of %s submitted for booking %s", refund.id, refund_amount, booking_id
            )
        else:
            self.logger.error(
                "Partial refund for booking %s failed: %s", booking_id, response.message,
                extra={"refund_id": refund.id, "booking_id": booking_id},
            )

        self.booking_repository.refresh(booking)
        self.notification_service.notify_partial_refund(booking, refund_amount, response.success)
        return {
            "refund_amount": refund_amount,
            "refund_id": refund.id,
            "refund_initiated": response.success,
            "new_seats": new_seats,
        }
