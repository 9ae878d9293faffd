"""
Tests for payment/payout reconciliation and the scheduled sweep over stuck records.
"""

from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from ridepay.core.config import settings
from ridepay.core.enums import (
    BookingPaymentStatus,
    BookingStatus,
    NotificationSource,
    PaymentStatus,
    PayoutStatus,
    RefundStatus,
)
from ridepay.core.exceptions import ProviderException
from ridepay.integrations.payment_providers import ProviderResponse
from ridepay.services.payment_orchestration_service import PaymentOrchestrationService
from ridepay.services.payment_reconciliation_service import PaymentReconciliationService
from ridepay.services.payout_reconciliation_service import PayoutReconciliationService
from ridepay.services.payout_retry_service import PayoutRetryService
from ridepay.services.reconciliation_sweep_service import ReconciliationSweepService
from ridepay.services.refund_status_service import RefundStatusService
from ridepay.utils.time import utcnow


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def orchestration(db, notifier):
    return PaymentOrchestrationService(db, notification_service=notifier)


@pytest.fixture
def payment_reconciliation(db, orchestration):
    return PaymentReconciliationService(db, orchestration_service=orchestration)


@pytest.fixture
def payout_reconciliation(db, notifier):
    return PayoutReconciliationService(
        db,
        notification_service=notifier,
        retry_service=PayoutRetryService(db, notification_service=notifier),
    )


@pytest.fixture
def sweep(db, orchestration, payment_reconciliation, payout_reconciliation):
    return ReconciliationSweepService(
        db,
        payment_reconciliation=payment_reconciliation,
        payout_reconciliation=payout_reconciliation,
        refund_status_service=RefundStatusService(db, orchestration_service=orchestration),
    )


def _stale():
    return utcnow() - timedelta(minutes=30)


def _processing_payment(records, **kw):
    booking = records.booking()
    kw.setdefault("transaction_id", "payin-ref-1")
    kw.setdefault("created_at", _stale())
    return booking, records.payment(booking, status=PaymentStatus.PROCESSING.value, **kw)


class TestReconcilePayment:
    def test_successful_provider_status_completes_payment_and_booking(
        self, db, records, provider, payment_reconciliation, notifier
    ):
        booking, payment = _processing_payment(records)
        provider.payment_status = ProviderResponse(success=True, status="SUCCESSFUL")

        result = payment_reconciliation.reconcile_payment(payment)

        assert result == {
            "payment_id": payment.id,
            "old_status": "processing",
            "new_status": "completed",
            "changed": True,
            "error": None,
        }
        db.refresh(booking)
        assert booking.status == BookingStatus.PENDING_VERIFICATION.value
        assert booking.payment_status == BookingPaymentStatus.COMPLETED.value
        notifier.notify_payment_completed.assert_called_once()

    def test_failed_provider_status_fails_payment(
        self, db, records, provider, payment_reconciliation
    ):
        booking, payment = _processing_payment(records)
        provider.payment_status = ProviderResponse(
            success=True, status="FAILED", message="Payer declined"
        )

        result = payment_reconciliation.reconcile_payment(payment)

        assert result["new_status"] == "failed"
        db.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED.value

    def test_still_pending_writes_nothing(self, records, provider, payment_reconciliation):
        _, payment = _processing_payment(records)

        result = payment_reconciliation.reconcile_payment(payment)

        assert result["changed"] is False
        assert payment.status == PaymentStatus.PROCESSING.value

    def test_payment_without_transaction_is_reported(
        self, records, provider, payment_reconciliation
    ):
        _, payment = _processing_payment(records, transaction_id=None)

        result = payment_reconciliation.reconcile_payment(payment)

        assert result["error"] == "Payment has no transaction id"
        assert provider.calls == []

    def test_provider_error_is_reported_not_raised(
        self, records, provider, payment_reconciliation
    ):
        _, payment = _processing_payment(records)
        provider.errors["check_payment"] = ProviderException("mtn", "Status check timed out")

        result = payment_reconciliation.reconcile_payment(payment)

        assert result["error"] == "Status check timed out"
        assert result["changed"] is False


class TestReconcilePayout:
    def test_completed_payout_is_closed_and_notified(
        self, records, provider, payout_reconciliation, notifier
    ):
        payout = records.payout(records.paid_booking())
        provider.payout_status = ProviderResponse(success=True, status="SUCCESSFUL")

        result = payout_reconciliation.reconcile_payout(payout)

        assert result["old_status"] == "processing"
        assert result["new_status"] == "completed"
        assert result["retry_attempted"] is False
        assert payout.metadata_["providerStatus"] == "SUCCESSFUL"
        notifier.send_payout_notification_if_needed.assert_called_once_with(
            payout, "completed", NotificationSource.CRON, None
        )

    def test_pending_mtn_payout_past_cooldown_is_retried(
        self, records, provider, payout_reconciliation
    ):
        payout = records.payout(records.paid_booking(), created_at=_stale())
        provider.payout_response = ProviderResponse(
            success=True, message="ok", transaction_id="payout-ref-2"
        )

        result = payout_reconciliation.reconcile_payout(payout)

        assert result["retryable"] is True
        assert result["retry_attempted"] is True
        assert result["retry_result"]["transaction_id"] == "payout-ref-2"
        assert payout.retry_count == 1

    def test_exhausted_payout_is_failed(self, records, provider, payout_reconciliation):
        payout = records.payout(
            records.paid_booking(), created_at=_stale(), metadata_={"retryCount": 3}
        )

        result = payout_reconciliation.reconcile_payout(payout)

        assert result["new_status"] == PayoutStatus.FAILED.value
        assert result["retry_attempted"] is False
        assert provider.operations() == ["check_payout_status"]

    def test_settled_payout_keeps_its_status(self, records, payout_reconciliation, notifier):
        payout = records.payout(records.paid_booking(), status=PayoutStatus.COMPLETED.value)

        changed = payout_reconciliation.apply_payout_status(
            payout, "failed", source="callback", metadata={"late": True}
        )

        assert changed is False
        assert payout.status == PayoutStatus.COMPLETED.value
        assert payout.metadata_["late"] is True
        notifier.send_payout_notification_if_needed.assert_not_called()

    def test_failed_status_stores_message(self, records, payout_reconciliation):
        payout = records.payout(records.paid_booking())

        payout_reconciliation.apply_payout_status(
            payout, "failed", source=NotificationSource.CALLBACK, message="PAYEE_NOT_FOUND"
        )

        assert payout.status == PayoutStatus.FAILED.value
        assert payout.error_message == "PAYEE_NOT_FOUND"


class TestSweep:
    def test_only_stale_records_are_checked(self, records, provider, sweep):
        _processing_payment(records)
        _processing_payment(records, transaction_id="fresh-ref", created_at=utcnow())
        records.payout(records.paid_booking(), created_at=_stale())

        summary = sweep.run()

        assert summary["payments"]["checked"] == 1
        assert summary["payouts"]["checked"] == 1
        assert summary["refunds"]["checked"] == 0

    def test_refund_in_flight_is_completed(self, db, records, provider, sweep):
        booking = records.booking(
            status=BookingStatus.CANCELLED.value,
            payment_status=BookingPaymentStatus.REFUNDED.value,
        )
        refund = records.refund(booking)
        provider.payout_status = ProviderResponse(success=True, status="SUCCESSFUL")

        summary = sweep.run()

        entry = summary["refunds"]["results"][0]
        assert entry["old_status"] == "processing"
        assert entry["new_status"] == "completed"
        db.refresh(refund)
        assert refund.status == RefundStatus.COMPLETED.value
        assert refund.metadata_["lastUpdateSource"] == "cron"

    def test_non_pawapay_records_skipped_when_pawapay_is_exclusive(
        self, records, provider, sweep, monkeypatch
    ):
        monkeypatch.setattr(settings, "use_pawapay", True)
        _processing_payment(records, provider="mtn")
        _processing_payment(records, provider="pawapay", transaction_id="deposit-1")

        summary = sweep.run()

        results = summary["payments"]["results"]
        skipped = [r for r in results if r.get("skipped")]
        assert len(skipped) == 1
        assert "pawaPay" in skipped[0]["reason"]
        assert provider.operations() == ["check_payment"]

    def test_one_failing_record_does_not_stop_the_sweep(
        self, records, provider, sweep, monkeypatch
    ):
        _processing_payment(records)
        _processing_payment(records, transaction_id="payin-ref-2")
        calls = []

        def flaky(payment, source="cron"):
            calls.append(payment.id)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return {"payment_id": payment.id, "changed": False, "error": None}

        monkeypatch.setattr(sweep.payment_reconciliation, "reconcile_payment", flaky)

        summary = sweep.run()

        errors = [r["error"] for r in summary["payments"]["results"]]
        assert summary["payments"]["checked"] == 2
        assert errors.count("boom") == 1

    def test_overlapping_run_is_skipped(self, sweep, provider, monkeypatch):
        @contextmanager
        def held(key, ttl_s=90):
            yield False

        monkeypatch.setattr("ridepay.services.reconciliation_sweep_service.named_lock_sync", held)

        assert sweep.run() == {"skipped": True, "reason": "Sweep already running"}
        assert provider.calls == []

    def test_stuck_mtn_payout_is_retried_three_times_then_failed_once(
        self, db, records, provider, sweep, notifier, monkeypatch
    ):
        monkeypatch.setattr(settings, "payout_max_retries", 3)
        monkeypatch.setattr(settings, "payout_retry_delay_minutes", 5)
        clock = {"now": utcnow()}
        monkeypatch.setattr(
            "ridepay.services.payout_retry_service.utcnow", lambda: clock["now"]
        )
        payout = records.payout(records.paid_booking(), created_at=_stale())
        provider.payout_status = ProviderResponse(
            success=True, status="PENDING", reason="INTERNAL_PROCESSING_ERROR"
        )

        for _ in range(6):
            sweep.run()
            clock["now"] += timedelta(minutes=6)

        db.refresh(payout)
        assert provider.operations().count("payout") == 3
        assert provider.operations().count("check_payout_status") == 4
        assert payout.status == PayoutStatus.FAILED.value
        assert payout.retry_count == 3
        assert payout.metadata_["maxRetriesReached"] is True
        assert [h["attempt"] for h in payout.metadata_["retryHistory"]] == [1, 2, 3]
        failed_notices = [
            c
            for c in notifier.send_payout_notification_if_needed.call_args_list
            if c.args[1] == PayoutStatus.FAILED.value
        ]
        assert len(failed_notices) == 1
        assert failed_notices[0].args[2] == NotificationSource.CRON
