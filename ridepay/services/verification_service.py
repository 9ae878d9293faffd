"""Verification codes: issued to the rider on payment, checked by the driver at pickup."""

from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingPaymentStatus, BookingStatus
from ..core.exceptions import BusinessRuleException, ForbiddenException, NotFoundException
from ..models.booking import Booking
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

_PAID = (
    BookingPaymentStatus.COMPLETED.value,
    BookingPaymentStatus.PARTIAL.value,
    BookingPaymentStatus.PARTIAL_REFUND.value,
)


class VerificationService(BaseService):
    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        return booking

    def verify_booking_code(self, booking_id: str, code: str) -> bool:
        """True when the code matched and is now marked used."""
        with self.transaction():
            verified = self.booking_repository.verify_booking_code(booking_id, code)
        self.logger.info("Verification for booking %s: %s", booking_id, "ok" if verified else "rejected")
        return verified

    def get_verification_code_for_user(self, booking_id: str, user_id: str) -> Dict[str, Any]:
        """
        Code status for the rider or the ride's driver.

        Only the rider ever sees the code itself, and not once it is used.
        """
        booking = self._require_booking(booking_id)
        is_owner = booking.user_id == user_id
        is_driver = booking.ride is not None and booking.ride.driver_id == user_id
        if not (is_owner or is_driver):
            raise ForbiddenException("You do not have access to this booking")

        info = self.booking_repository.get_verification_code(booking_id)
        show_code = is_owner and info is not None and not info.verified
        return {
            "booking_id": booking_id,
            "code": info.code if show_code else None,
            "expiry": info.expiry if info else None,
            "verified": bool(info and info.verified),
            "has_code": bool(info and info.code),
        }

    def generate_verification_code_for_user(self, booking_id: str, user_id: str) -> Dict[str, Any]:
        booking = self._require_booking(booking_id)
        if booking.user_id != user_id:
            raise ForbiddenException("Only the passenger can generate a verification code")
        if booking.payment_status not in _PAID:
            raise BusinessRuleException("Booking has not been paid", code="BOOKING_NOT_PAID")
        return self._issue(booking)

    def refresh_verification_code_for_owner(self, booking_id: str, user_id: str) -> Dict[str, Any]:
        booking = self._require_booking(booking_id)
        if booking.user_id != user_id:
            raise ForbiddenException("Only the passenger can refresh the verification code")
        if booking.status != BookingStatus.CONFIRMED.value and booking.payment_status not in _PAID:
            raise BusinessRuleException(
                "Booking must be confirmed or paid to refresh its code", code="BOOKING_NOT_PAID"
            )
        return self._issue(booking)

    def _issue(self, booking: Booking) -> Dict[str, Any]:
        if booking.code_verified:
            raise BusinessRuleException(
                "Verification code has already been used", code="CODE_ALREADY_VERIFIED"
            )
        with self.transaction():
            code = self.booking_repository.generate_verification_code(
                booking.id, settings.verification_code_ttl_hours
            )
        info = self.booking_repository.get_verification_code(booking.id)
        return {
            "booking_id": booking.id,
            "code": code,
            "expiry": info.expiry if info else None,
            "verified": False,
            "has_code": True,
        }
