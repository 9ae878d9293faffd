# ridepay/repositories/booking_repository.py
"""
Booking Repository.

Besides plain lookups this repository hosts the atomic booking primitives:
seat reservation, cancel-and-restore-seats, cancel-with-refund-preparation,
seat reduction and verification-code management. Each primitive locks the
ride and/or booking row (SELECT ... FOR UPDATE), validates, and applies every
capacity-affecting write in the caller's transaction, so the transaction
boundary lives in the data layer and not in application memory.
"""

from dataclasses import dataclass, field
from datetime import timedelta
import logging
import secrets
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ridepay.core.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingPaymentStatus,
    BookingStatus,
    FULLY_PAID_BOOKING_PAYMENT_STATUSES,
    RefundStatus,
    RefundType,
)
from ridepay.core.exceptions import RepositoryException
from ridepay.database.session_utils import supports_row_locks
from ridepay.models.booking import Booking
from ridepay.models.payment import Payment
from ridepay.models.refund import Refund
from ridepay.models.ride import Ride
from ridepay.utils.time import ensure_utc, utcnow

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

VERIFICATION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VERIFICATION_CODE_LENGTH = 6


@dataclass
class SeatReservationResult:
    success: bool
    booking_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class CancellationPreparationResult:
    success: bool
    booking_cancelled: bool = False
    refund_record_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    debug_info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationCodeInfo:
    code: Optional[str]
    expiry: Optional[Any]
    verified: bool


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.ride))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_active_booking(
        self,
        ride_id: str,
        user_id: str,
        statuses: Sequence[str] = ACTIVE_BOOKING_STATUSES,
    ) -> Optional[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.ride_id == ride_id,
                Booking.user_id == user_id,
                Booking.status.in_(list(statuses)),
            )
            .order_by(Booking.created_at.desc())
            .first()
        )

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        query = (
            self.db.query(Booking)
            .options(joinedload(Booking.ride))
            .filter(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        return self._execute_query(query)

    def get_driver_bookings(self, driver_id: str) -> List[Booking]:
        query = (
            self.db.query(Booking)
            .join(Ride, Ride.id == Booking.ride_id)
            .options(joinedload(Booking.ride))
            .filter(Ride.driver_id == driver_id)
            .order_by(Booking.created_at.desc())
        )
        return self._execute_query(query)

    def _lock_ride(self, ride_id: str) -> Optional[Ride]:
        if not supports_row_locks(self.db):
            # No-op write so SQLite hands out its writer lock before capacity is read.
            self.db.execute(
                update(Ride)
                .where(Ride.id == ride_id)
                .values(seats_available=Ride.seats_available, updated_at=Ride.updated_at)
                .execution_options(synchronize_session=False)
            )
        query = self.db.query(Ride).filter(Ride.id == ride_id).populate_existing()
        return self._locked(query).first()

    # ------------------------------------------------------------------
    # Seat reservation primitive
    # ------------------------------------------------------------------

    def reserve_ride_seats(
        self,
        ride_id: str,
        user_id: str,
        seats: int,
        booking_id: Optional[str] = None,
    ) -> SeatReservationResult:
        """
        Atomically create a booking (booking_id None) or resize an existing one.

        The ride row is locked first so concurrent reservations for the same ride
        serialize; capacity is checked and decremented under that lock.
        """
        try:
            ride = self._lock_ride(ride_id)
            if ride is None:
                return SeatReservationResult(False, None, "Ride not found", "RIDE_NOT_FOUND")
            if ride.driver_id == user_id:
                return SeatReservationResult(
                    False, None, "Driver cannot book their own ride", "OWN_RIDE"
                )
            if seats < 1:
                return SeatReservationResult(
                    False, None, "At least one seat must be booked", "INVALID_SEATS"
                )

            if booking_id is not None:
                return self._resize_reservation(ride, user_id, seats, booking_id)

            if ride.seats_available < seats:
                return SeatReservationResult(
                    False,
                    None,
                    f"Only {ride.seats_available} seats available, requested {seats}",
                    "INSUFFICIENT_SEATS",
                )

            if self.find_active_booking(ride_id, user_id) is not None:
                return SeatReservationResult(
                    False, None, "User already has a booking for this ride", "DUPLICATE_BOOKING"
                )

            booking = Booking(
                ride_id=ride_id,
                user_id=user_id,
                seats=seats,
                status=BookingStatus.PENDING.value,
                payment_status=BookingPaymentStatus.PENDING.value,
            )
            self.db.add(booking)
            ride.seats_available = ride.seats_available - seats
            self.db.flush()
            return SeatReservationResult(True, booking.id, None)
        except SQLAlchemyError as exc:
            self.logger.error("reserve_ride_seats failed for ride %s: %s", ride_id, exc)
            self.db.rollback()
            return SeatReservationResult(False, None, str(exc), "DATABASE_ERROR")

    def _resize_reservation(
        self, ride: Ride, user_id: str, seats: int, booking_id: str
    ) -> SeatReservationResult:
        booking = (
            self.db.query(Booking)
            .filter(
                Booking.id == booking_id,
                Booking.user_id == user_id,
                Booking.ride_id == ride.id,
            )
            .first()
        )
        if booking is None:
            return SeatReservationResult(
                False, None, "Booking not found or access denied", "BOOKING_NOT_FOUND"
            )
        if booking.status in (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value):
            return SeatReservationResult(
                False,
                None,
                f"Cannot update booking with status: {booking.status}",
                "BOOKING_NOT_MODIFIABLE",
            )
        paid = booking.payment_status in FULLY_PAID_BOOKING_PAYMENT_STATUSES
        if paid and seats < booking.seats:
            # Shrinking a paid booking goes through reduce_booking_seats with a refund.
            return SeatReservationResult(
                False, None, "Cannot reduce seats on a paid booking", "PAID_BOOKING_SEAT_REDUCTION"
            )

        effective_available = ride.seats_available + booking.seats
        if effective_available < seats:
            return SeatReservationResult(
                False,
                None,
                f"Only {effective_available} seats available for this update",
                "INSUFFICIENT_SEATS",
            )

        if paid and seats > booking.seats:
            # The added seats are owed until a top-up payment completes.
            booking.payment_status = BookingPaymentStatus.PARTIAL.value
        ride.seats_available = effective_available - seats
        booking.seats = seats
        booking.touch()
        self.db.flush()
        return SeatReservationResult(True, booking.id, None)

    # ------------------------------------------------------------------
    # Cancellation primitives
    # ------------------------------------------------------------------

    def cancel_booking_and_restore_seats(self, booking_id: str) -> bool:
        """Cancel an active booking and give its seats back to the ride."""
        booking = self._locked(self.db.query(Booking).filter(Booking.id == booking_id)).first()
        if booking is None:
            self.logger.warning("Cannot cancel missing booking %s", booking_id)
            return False
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            self.logger.warning(
                "Booking %s cannot be cancelled in status %s", booking_id, booking.status
            )
            return False

        ride = self._lock_ride(booking.ride_id)
        if ride is None:
            raise RepositoryException(f"Ride {booking.ride_id} missing for booking {booking_id}")

        booking.status = BookingStatus.CANCELLED.value
        booking.touch()
        ride.seats_available = ride.seats_available + booking.seats
        self.db.flush()
        self.logger.info(
            "Cancelled booking %s and restored %s seats to ride %s",
            booking_id,
            booking.seats,
            ride.id,
        )
        return True

    def cancel_booking_with_refund_preparation(
        self,
        booking_id: str,
        user_id: str,
        amount: float,
        currency: str,
        provider: str,
        phone_number: Optional[str],
        payment_ids: Sequence[str],
    ) -> CancellationPreparationResult:
        """
        Cancel a paid booking, restore its seats and insert a pending full refund.

        Every write happens in the caller's transaction; a failed validation step
        returns before anything is written. `debug_info.steps` records each step.
        """
        steps: List[Dict[str, Any]] = []
        debug: Dict[str, Any] = {
            "booking_id": booking_id,
            "user_id": user_id,
            "started_at": utcnow().isoformat(),
            "steps": steps,
        }

        def fail(step: str, message: str) -> CancellationPreparationResult:
            steps.append({"step": step, "status": "failed", "error": message})
            return CancellationPreparationResult(False, error_message=message, debug_info=debug)

        booking = self._locked(self.db.query(Booking).filter(Booking.id == booking_id)).first()
        if booking is None:
            return fail("validate_booking", f"Booking not found: {booking_id}")
        steps.append(
            {
                "step": "validate_booking",
                "status": "success",
                "booking_status": booking.status,
                "payment_status": booking.payment_status,
                "seats": booking.seats,
            }
        )

        if booking.status == BookingStatus.CANCELLED.value:
            return fail("validate_cancellation", "Booking is already cancelled")
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            return fail(
                "validate_cancellation",
                f"Booking cannot be cancelled in current status: {booking.status}",
            )
        steps.append({"step": "validate_cancellation", "status": "success"})

        if payment_ids:
            foreign = (
                self.db.query(Payment.id)
                .filter(Payment.id.in_(list(payment_ids)), Payment.booking_id != booking_id)
                .first()
            )
            if foreign is not None:
                return fail(
                    "validate_payments",
                    "Payment validation failed: payments do not belong to booking",
                )
            steps.append(
                {"step": "validate_payments", "status": "success", "payment_count": len(payment_ids)}
            )
        else:
            steps.append(
                {
                    "step": "validate_payments",
                    "status": "warning",
                    "message": "No payments provided - proceeding with cancellation only",
                }
            )

        ride = self._lock_ride(booking.ride_id)
        if ride is None:
            return fail("cancel_booking", f"Ride not found for booking {booking_id}")

        previous_payment_status = booking.payment_status
        booking.status = BookingStatus.CANCELLED.value
        if previous_payment_status == BookingPaymentStatus.COMPLETED.value:
            booking.payment_status = BookingPaymentStatus.REFUNDED.value
        booking.touch()
        ride.seats_available = ride.seats_available + booking.seats
        steps.append(
            {"step": "cancel_booking", "status": "success", "seats_restored": booking.seats}
        )

        refund_id: Optional[str] = None
        if amount > 0:
            refund = Refund(
                booking_id=booking_id,
                user_id=user_id,
                payment_id=payment_ids[0] if payment_ids else None,
                amount=amount,
                currency=currency,
                provider=provider,
                phone_number=phone_number,
                refund_type=RefundType.FULL.value,
                status=RefundStatus.PENDING.value,
                reason="Booking cancelled by passenger",
                metadata_={
                    "payment_ids": list(payment_ids),
                    "payment_count": len(payment_ids),
                    "previous_payment_status": previous_payment_status,
                },
            )
            self.db.add(refund)
            self.db.flush()
            refund_id = refund.id
            steps.append({"step": "create_refund", "status": "success", "refund_id": refund_id})
        else:
            self.db.flush()

        debug["completed_at"] = utcnow().isoformat()
        return CancellationPreparationResult(
            True, booking_cancelled=True, refund_record_id=refund_id, debug_info=debug
        )

    # ------------------------------------------------------------------
    # Seat reduction primitive
    # ------------------------------------------------------------------

    def reduce_booking_seats(self, booking_id: str, new_seats: int) -> Optional[Booking]:
        """Shrink a booking, release the freed seats and mark it partially refunded-to-be."""
        booking = self._locked(self.db.query(Booking).filter(Booking.id == booking_id)).first()
        if booking is None:
            return None
        ride = self._lock_ride(booking.ride_id)
        if ride is None:
            raise RepositoryException(f"Ride {booking.ride_id} missing for booking {booking_id}")

        released = booking.seats - new_seats
        booking.seats = new_seats
        booking.payment_status = BookingPaymentStatus.PARTIAL.value
        booking.touch()
        ride.seats_available = ride.seats_available + released
        self.db.flush()
        return booking

    # ------------------------------------------------------------------
    # Verification code primitives
    # ------------------------------------------------------------------

    def generate_verification_code(self, booking_id: str, ttl_hours: int = 24) -> str:
        booking = self.get_for_update(booking_id)
        if booking is None:
            raise RepositoryException(f"Failed to update booking {booking_id} with verification code")
        code = "".join(
            secrets.choice(VERIFICATION_CODE_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH)
        )
        booking.verification_code = code
        booking.code_verified = False
        booking.code_expiry = utcnow() + timedelta(hours=ttl_hours)
        booking.touch()
        self.db.flush()
        return code

    def get_verification_code(self, booking_id: str) -> Optional[VerificationCodeInfo]:
        booking = self.get_by_id(booking_id, load_relationships=False)
        if booking is None:
            return None
        return VerificationCodeInfo(
            code=booking.verification_code,
            expiry=ensure_utc(booking.code_expiry),
            verified=bool(booking.code_verified),
        )

    def verify_booking_code(self, booking_id: str, submitted_code: str) -> bool:
        """Mark the code verified when it matches, has not expired and was not used."""
        booking = self.get_for_update(booking_id)
        if booking is None or not booking.verification_code:
            return False
        expiry = ensure_utc(booking.code_expiry)
        if booking.code_verified or expiry is None or expiry <= utcnow():
            return False
        if not secrets.compare_digest(
            booking.verification_code.upper(), (submitted_code or "").strip().upper()
        ):
            return False
        booking.code_verified = True
        booking.touch()
        self.db.flush()
        return True
