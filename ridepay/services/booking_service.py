# ridepay/services/booking_service.py
"""
Booking Service for the ride payment service.

Seat reservation always goes through BookingRepository.reserve_ride_seats, the
atomic primitive that owns ride capacity. This service adds the checks around
it (ride state, pickup points, ownership) and closes the payment race: a
booking created after its payment already completed is promoted on creation.
"""

from __future__ import annotations

from datetime import timedelta
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import BookingPaymentStatus, FULLY_PAID_BOOKING_PAYMENT_STATUSES
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..models.booking import Booking
from ..models.ride import Ride
from ..repositories.booking_repository import SeatReservationResult
from ..repositories.factory import RepositoryFactory
from ..utils.time import ensure_utc
from .base import BaseService
from .cancellation_service import CancellationService
from .payment_orchestration_service import PaymentOrchestrationService

logger = logging.getLogger(__name__)

RIDE_CANCELLED_MESSAGE = "This ride has been cancelled by the driver"

_RESERVATION_ERRORS = {
    "RIDE_NOT_FOUND": NotFoundException,
    "BOOKING_NOT_FOUND": NotFoundException,
    "INVALID_SEATS": ValidationException,
    "DUPLICATE_BOOKING": ConflictException,
    "PAID_BOOKING_SEAT_REDUCTION": ValidationException,
}


def resolve_pickup_point(ride: Ride, pickup_point_id: str) -> Dict[str, Any]:
    """
    Find a pickup point on the ride and compute its time.

    Pickup points are stored as a JSON list of {id, name, time_offset_minutes};
    older rides hold the same list serialized as a string.
    """
    raw = ride.pickup_points
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationException("Invalid pickup points data in ride")
    if raw is None or (isinstance(raw, list) and not raw):
        raise ValidationException("Ride has no pickup points defined")
    if not isinstance(raw, list):
        raise ValidationException("Invalid pickup points data in ride")

    for point in raw:
        if isinstance(point, dict) and str(point.get("id")) == str(pickup_point_id):
            try:
                offset = int(point.get("time_offset_minutes") or 0)
            except (TypeError, ValueError):
                raise ValidationException("Invalid pickup points data in ride")
            departure = ensure_utc(ride.departure_time)
            return {
                "pickup_point_id": str(point["id"]),
                "pickup_point_name": point.get("name"),
                "pickup_time": departure + timedelta(minutes=offset) if departure else None,
            }
    raise ValidationException("Selected pickup point not found in ride")


class BookingService(BaseService):
    def __init__(
        self,
        db: Session,
        orchestration_service: Optional[PaymentOrchestrationService] = None,
        cancellation_service: Optional[CancellationService] = None,
    ) -> None:
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.ride_repository = RepositoryFactory.create_ride_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.orchestration_service = orchestration_service or PaymentOrchestrationService(db)
        self.cancellation_service = cancellation_service or CancellationService(
            db, notification_service=self.orchestration_service.notification_service
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def require_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        return booking

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        return self.booking_repository.get_user_bookings(user_id)

    def get_driver_bookings(self, driver_id: str) -> List[Booking]:
        return self.booking_repository.get_driver_bookings(driver_id)

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        user_id: str,
        ride_id: str,
        seats: int,
        pickup_point_id: Optional[str] = None,
    ) -> Booking:
        """
        Reserve seats on a ride for a rider.

        A rider with an active booking on the ride gets that booking resized
        instead of a second one.
        """
        if seats < 1:
            raise ValidationException("At least one seat must be booked", code="INVALID_SEATS")

        ride = self.ride_repository.get_by_id(ride_id)
        if ride is None:
            raise NotFoundException(f"Ride not found: {ride_id}", code="RIDE_NOT_FOUND")
        if ride.is_cancelled:
            raise BusinessRuleException(RIDE_CANCELLED_MESSAGE, code="RIDE_CANCELLED")

        pickup = resolve_pickup_point(ride, pickup_point_id) if pickup_point_id else None
        existing = self.booking_repository.find_active_booking(ride_id, user_id)

        with self.transaction():
            result = self.booking_repository.reserve_ride_seats(
                ride_id, user_id, seats, existing.id if existing else None
            )
            if not result.success:
                raise self._reservation_error(result)
            booking = self.booking_repository.get_by_id(result.booking_id)
            if pickup:
                booking.pickup_point_id = pickup["pickup_point_id"]
                booking.pickup_point_name = pickup["pickup_point_name"]
                booking.pickup_time = pickup["pickup_time"]
                self.booking_repository.flush()

        self.log_operation(
            "update_booking" if existing else "create_booking",
            booking_id=booking.id,
            ride_id=ride_id,
            seats=seats,
        )
        return self.reconcile_completed_payment(booking)

    @BaseService.measure_operation("update_booking")
    def update_booking(self, booking_id: str, user_id: str, seats: int) -> Booking:
        booking = self.require_booking(booking_id)
        if booking.user_id != user_id:
            raise ForbiddenException("You can only update your own bookings")
        if booking.code_verified:
            raise ForbiddenException("Booking can no longer be modified after code verification")

        with self.transaction():
            result = self.booking_repository.reserve_ride_seats(
                booking.ride_id, user_id, seats, booking.id
            )
            if not result.success:
                raise self._reservation_error(result)

        self.booking_repository.refresh(booking)
        return self.reconcile_completed_payment(booking)

    @staticmethod
    def _reservation_error(result: SeatReservationResult) -> Exception:
        exc_class = _RESERVATION_ERRORS.get(result.error_code or "", BusinessRuleException)
        return exc_class(
            result.error_message or "Seat reservation failed",
            code=result.error_code or "SEAT_RESERVATION_FAILED",
        )

    def reconcile_completed_payment(self, booking: Booking) -> Booking:
        """
        Promote a booking whose payment completed before the booking existed.

        Runs after every create/update. Only a booking still waiting for its
        first payment is promoted, so the promotion happens once and a paid
        booking that was resized keeps its partial or partial_refund status.
        """
        if booking.payment_status != BookingPaymentStatus.PENDING.value:
            return booking
        completed = self.payment_repository.get_completed_for_booking(booking.id)
        if not completed:
            return booking

        self.logger.info(
            "Booking %s has completed payment %s not yet reflected; promoting",
            booking.id,
            completed[0].id,
        )
        promoted = self.orchestration_service.complete_booking_for_payment(completed[0])
        return promoted or booking

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def calculate_additional_payment_amount(self, booking_id: str, new_seats: int) -> float:
        """
        Amount to collect for `new_seats`.

        A paid booking is only charged for the added seats; shrinking it here is
        refused (see RefundService.reduce_seats_with_refund).
        """
        booking = self.require_booking(booking_id)
        price = self.ride_repository.get_price(booking.ride_id)
        if price is None:
            raise ValidationException("Ride price not found", code="RIDE_PRICE_NOT_FOUND")

        if booking.payment_status in FULLY_PAID_BOOKING_PAYMENT_STATUSES:
            if new_seats <= booking.seats:
                raise ValidationException(
                    "Cannot reduce seats on a paid booking", code="PAID_BOOKING_SEAT_REDUCTION"
                )
            return round((new_seats - booking.seats) * price, 2)
        return round(new_seats * price, 2)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_booking(self, booking_id: str, user_id: str) -> Dict[str, Any]:
        """Cancel through CancellationService so paid bookings get their refund."""
        return self.cancellation_service.cancel_booking_with_refund(booking_id, user_id)
