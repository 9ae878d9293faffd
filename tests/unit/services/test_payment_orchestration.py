"""
Tests for PaymentOrchestrationService side effects on bookings, receipts and notifications.
"""

from unittest.mock import MagicMock

import pytest

from ridepay.core.enums import BookingPaymentStatus, BookingStatus, PaymentStatus
from ridepay.core.exceptions import IllegalTransitionException
from ridepay.services.payment_orchestration_service import PaymentOrchestrationService


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def orchestrator(db, notifier):
    return PaymentOrchestrationService(db, notification_service=notifier)


class TestCompletion:
    def test_completed_payment_promotes_booking_and_issues_code(
        self, db, records, orchestrator, notifier
    ):
        booking = records.booking(seats=2)
        payment = records.payment(booking, status="processing", transaction_id="tx-1")

        result = orchestrator.handle_payment_status_change(payment.id, "completed", {}, "callback")

        assert result.changed is True
        db.refresh(booking)
        assert booking.payment_status == BookingPaymentStatus.COMPLETED.value
        assert booking.status == BookingStatus.PENDING_VERIFICATION.value
        assert booking.verification_code and len(booking.verification_code) == 6
        assert booking.code_verified is False
        receipt = orchestrator.receipt_service.get_receipt_by_payment_id(payment.id)
        assert receipt is not None
        assert receipt.receipt_number.startswith("RECEIPT-")
        notifier.notify_payment_completed.assert_called_once()
        assert notifier.notify_payment_completed.call_args.args[3] == booking.verification_code

    def test_duplicate_completion_is_noop(self, db, records, orchestrator, notifier):
        booking = records.booking()
        payment = records.payment(booking, status="processing")
        orchestrator.handle_payment_status_change(payment.id, "completed")
        code = booking.verification_code

        again = orchestrator.handle_payment_status_change(payment.id, "completed")

        assert again.changed is False
        db.refresh(booking)
        assert booking.verification_code == code
        assert notifier.notify_payment_completed.call_count == 1

    def test_cancelled_booking_is_left_alone(self, db, records, orchestrator, notifier):
        booking = records.booking(status=BookingStatus.CANCELLED.value)
        payment = records.payment(booking, status="processing")

        orchestrator.handle_payment_status_change(payment.id, "completed")

        db.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.payment_status == BookingPaymentStatus.PENDING.value
        notifier.notify_payment_completed.assert_not_called()

    def test_payment_without_booking_row_is_deferred(self, db, records, orchestrator):
        payment = records.payment(booking_id="01HZZZZZZZZZZZZZZZZZZZZZZZ", status="processing")

        result = orchestrator.handle_payment_status_change(payment.id, "completed")

        assert result.changed is True
        assert result.new_status == "completed"

    def test_verified_booking_keeps_its_status_on_top_up(self, db, records, orchestrator):
        booking = records.booking(
            status=BookingStatus.CONFIRMED.value,
            payment_status=BookingPaymentStatus.PARTIAL.value,
            code_verified=True,
            verification_code="ABC234",
        )
        payment = records.payment(booking, status="processing")

        orchestrator.handle_payment_status_change(payment.id, "completed")

        db.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.payment_status == BookingPaymentStatus.COMPLETED.value
        assert booking.verification_code == "ABC234"

    def test_notification_failure_does_not_undo_completion(
        self, db, records, orchestrator, notifier
    ):
        notifier.notify_payment_completed.side_effect = RuntimeError("sms down")
        booking = records.booking()
        payment = records.payment(booking, status="processing")

        result = orchestrator.handle_payment_status_change(payment.id, "completed")

        assert result.changed is True
        db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED.value


class TestFailure:
    def test_failed_payment_cancels_booking_and_restores_seats(
        self, db, records, orchestrator, notifier
    ):
        ride = records.ride(seats_available=4)
        booking = records.booking(ride=ride, seats=3)
        payment = records.payment(booking, status="processing")

        orchestrator.handle_payment_status_change(
            payment.id, "failed", {"error_message": "Solde insuffisant"}
        )

        db.refresh(booking)
        db.refresh(ride)
        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.payment_status == BookingPaymentStatus.FAILED.value
        assert ride.seats_available == 4
        notifier.notify_payment_failed.assert_called_once()
        assert notifier.notify_payment_failed.call_args.args[2] == "Solde insuffisant"

    def test_failed_top_up_leaves_paid_booking_alone(self, db, records, orchestrator):
        booking = records.paid_booking(seats=1)
        top_up = records.payment(booking, status="processing", amount=2500)

        orchestrator.handle_payment_status_change(top_up.id, "failed")

        db.refresh(booking)
        assert booking.status == BookingStatus.PENDING_VERIFICATION.value
        assert booking.payment_status == BookingPaymentStatus.COMPLETED.value


class TestIllegalTransitions:
    def test_illegal_transition_raises_before_any_write(self, db, records, orchestrator):
        booking = records.booking()
        payment = records.payment(booking, status="failed")

        with pytest.raises(IllegalTransitionException):
            orchestrator.handle_payment_status_change(payment.id, "completed")

        db.refresh(payment)
        assert payment.status == "failed"
        assert "statusHistory" not in (payment.metadata_ or {})


class TestApplyProviderStatus:
    def test_pending_to_completed_walks_through_processing(self, db, records, orchestrator):
        booking = records.booking()
        payment = records.payment(booking, status="pending", transaction_id="tx-1")

        result = orchestrator.apply_provider_status(payment.id, "completed", {}, "cron")

        assert result.previous_status == "pending"
        assert result.new_status == "completed"
        db.refresh(payment)
        steps = [(h["from"], h["to"]) for h in payment.metadata_["statusHistory"]]
        assert steps == [("pending", "processing"), ("processing", "completed")]

    def test_pending_report_changes_nothing(self, db, records, orchestrator):
        payment = records.payment(records.booking(), status="processing")

        result = orchestrator.apply_provider_status(payment.id, "pending")

        assert result.changed is False
        assert result.new_status == "processing"

    def test_processing_report_on_processing_payment_is_noop(self, records, orchestrator):
        payment = records.payment(records.booking(), status="processing")

        result = orchestrator.apply_provider_status(payment.id, "processing")

        assert result.changed is False


class TestPaymentDetails:
    def test_details_include_ride_driver_and_receipt(self, records, orchestrator):
        booking = records.booking()
        payment = records.payment(booking, status="processing")
        orchestrator.handle_payment_status_change(payment.id, "completed")

        details = orchestrator.get_payment_with_details(payment.id)

        assert details["booking"].id == booking.id
        assert details["ride"].id == booking.ride_id
        assert details["driver"].id == booking.ride.driver_id
        assert details["receipt"].payment_id == payment.id
