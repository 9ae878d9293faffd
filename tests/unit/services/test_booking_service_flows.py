"""
Tests for BookingService: creation, updates, pickup points, pricing and the
completed-payment race.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from ridepay.core.enums import BookingPaymentStatus, BookingStatus, RideStatus
from ridepay.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ridepay.repositories.booking_repository import SeatReservationResult
from ridepay.services.booking_service import BookingService, resolve_pickup_point
from ridepay.services.payment_orchestration_service import PaymentOrchestrationService

PICKUPS = [
    {"id": "p1", "name": "Akwa", "time_offset_minutes": 0},
    {"id": "p2", "name": "Bonaberi", "time_offset_minutes": 20},
]


@pytest.fixture
def booking_service(db):
    orchestration = PaymentOrchestrationService(db, notification_service=MagicMock())
    return BookingService(db, orchestration_service=orchestration)


class TestCreateBooking:
    def test_creates_booking_with_pickup_point(self, db, records, booking_service):
        departure = datetime(2026, 11, 2, 8, 0, tzinfo=timezone.utc)
        ride = records.ride(seats_available=4, pickup_points=PICKUPS, departure_time=departure)
        passenger = records.user()

        booking = booking_service.create_booking(passenger.id, ride.id, 2, "p2")

        assert booking.seats == 2
        assert booking.pickup_point_name == "Bonaberi"
        assert booking.pickup_time.replace(tzinfo=timezone.utc) == departure + timedelta(minutes=20)
        db.refresh(ride)
        assert ride.seats_available == 2

    def test_second_create_resizes_existing_booking(self, db, records, booking_service):
        ride = records.ride(seats_available=4)
        passenger = records.user()

        first = booking_service.create_booking(passenger.id, ride.id, 1)
        second = booking_service.create_booking(passenger.id, ride.id, 3)

        assert second.id == first.id
        assert second.seats == 3
        db.refresh(ride)
        assert ride.seats_available == 1

    def test_cancelled_ride_is_refused(self, records, booking_service):
        ride = records.ride(status=RideStatus.CANCELLED.value)

        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.create_booking(records.user().id, ride.id, 1)

        assert exc_info.value.code == "RIDE_CANCELLED"

    def test_reservation_errors_map_to_exceptions(self, records, booking_service):
        ride = records.ride(seats_available=1)

        with pytest.raises(NotFoundException):
            booking_service.create_booking(records.user().id, "missing-ride", 1)
        with pytest.raises(ValidationException):
            booking_service.create_booking(records.user().id, ride.id, 0)
        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.create_booking(records.user().id, ride.id, 2)
        assert exc_info.value.code == "INSUFFICIENT_SEATS"

    def test_unknown_pickup_point_is_rejected(self, records, booking_service):
        ride = records.ride(pickup_points=PICKUPS)

        with pytest.raises(ValidationException):
            booking_service.create_booking(records.user().id, ride.id, 1, "p9")

    def test_booking_created_after_payment_completed_is_promoted(
        self, db, records, booking_service
    ):
        ride = records.ride(seats_available=4)
        passenger = records.user()
        # Payment lands between the reservation and the service reading the booking.
        result = booking_service.booking_repository.reserve_ride_seats(ride.id, passenger.id, 1)
        db.commit()
        records.payment(booking_id=result.booking_id, status="completed")

        booking = booking_service.update_booking(result.booking_id, passenger.id, 1)

        assert booking.payment_status == BookingPaymentStatus.COMPLETED.value
        assert booking.status == BookingStatus.PENDING_VERIFICATION.value
        assert booking.verification_code


class TestUpdateBooking:
    def test_only_owner_can_update(self, records, booking_service):
        booking = records.booking()

        with pytest.raises(ForbiddenException):
            booking_service.update_booking(booking.id, records.user().id, 2)

    def test_verified_booking_cannot_change(self, records, booking_service):
        booking = records.booking(code_verified=True)

        with pytest.raises(ForbiddenException):
            booking_service.update_booking(booking.id, booking.user_id, 2)

    @pytest.mark.parametrize(
        "payment_status",
        [BookingPaymentStatus.COMPLETED.value, BookingPaymentStatus.PARTIAL_REFUND.value],
    )
    def test_paid_booking_cannot_shrink_without_refund(
        self, db, records, provider, booking_service, payment_status
    ):
        ride = records.ride(seats_available=4, price=1000.0)
        booking = records.paid_booking(ride=ride, seats=3)
        booking.payment_status = payment_status
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            booking_service.update_booking(booking.id, booking.user_id, 1)

        assert exc_info.value.code == "PAID_BOOKING_SEAT_REDUCTION"
        assert exc_info.value.message == "Cannot reduce seats on a paid booking"
        db.refresh(booking)
        db.refresh(ride)
        assert booking.seats == 3
        assert booking.payment_status == payment_status
        assert ride.seats_available == 1
        assert provider.calls == []

    def test_growing_paid_booking_leaves_it_partially_paid(self, db, records, booking_service):
        ride = records.ride(seats_available=4, price=1000.0)
        booking = records.paid_booking(ride=ride, seats=1)

        updated = booking_service.update_booking(booking.id, booking.user_id, 3)

        assert updated.seats == 3
        assert updated.payment_status == BookingPaymentStatus.PARTIAL.value
        db.refresh(ride)
        assert ride.seats_available == 1

    def test_unpaid_booking_can_shrink(self, db, records, booking_service):
        ride = records.ride(seats_available=4)
        booking = records.booking(ride=ride, seats=3)

        updated = booking_service.update_booking(booking.id, booking.user_id, 1)

        assert updated.seats == 1
        assert updated.payment_status == BookingPaymentStatus.PENDING.value
        db.refresh(ride)
        assert ride.seats_available == 3


class TestPricing:
    def test_unpaid_booking_is_charged_for_all_seats(self, records, booking_service):
        booking = records.booking(ride=records.ride(price=2500.0), seats=1)

        assert booking_service.calculate_additional_payment_amount(booking.id, 3) == 7500.0

    def test_paid_booking_is_charged_the_delta(self, records, booking_service):
        booking = records.paid_booking(ride=records.ride(price=2500.0), seats=2)

        assert booking_service.calculate_additional_payment_amount(booking.id, 3) == 2500.0

    def test_paid_booking_cannot_shrink_here(self, records, booking_service):
        booking = records.paid_booking(seats=2)

        with pytest.raises(ValidationException) as exc_info:
            booking_service.calculate_additional_payment_amount(booking.id, 1)

        assert exc_info.value.code == "PAID_BOOKING_SEAT_REDUCTION"

    def test_missing_price_is_an_error(self, records, booking_service):
        booking = records.booking(ride=records.ride(price=None))

        with pytest.raises(ValidationException):
            booking_service.calculate_additional_payment_amount(booking.id, 2)


class TestResolvePickupPoint:
    def test_accepts_json_string(self, records):
        ride = records.ride(pickup_points='[{"id": 7, "name": "Mvan", "time_offset_minutes": 5}]')

        point = resolve_pickup_point(ride, "7")

        assert point["pickup_point_id"] == "7"
        assert point["pickup_point_name"] == "Mvan"

    @pytest.mark.parametrize("raw", [None, [], "not json", {"id": "p1"}])
    def test_invalid_pickup_data(self, records, raw):
        ride = records.ride(pickup_points=raw)

        with pytest.raises(ValidationException):
            resolve_pickup_point(ride, "p1")


class TestReservationErrors:
    def test_duplicate_booking_is_a_conflict(self):
        error = BookingService._reservation_error(
            SeatReservationResult(False, None, "dup", "DUPLICATE_BOOKING")
        )

        assert isinstance(error, ConflictException)
        assert error.code == "DUPLICATE_BOOKING"

    def test_unmapped_code_is_a_business_rule_violation(self):
        error = BookingService._reservation_error(SeatReservationResult(False, None, None, None))

        assert type(error) is BusinessRuleException
        assert error.code == "SEAT_RESERVATION_FAILED"
