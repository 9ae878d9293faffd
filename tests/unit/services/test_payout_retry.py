"""
Tests for payout retry classification and the bounded retry service.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from ridepay.core.enums import NotificationSource, PayoutStatus
from ridepay.integrations.payment_providers import ProviderResponse
from ridepay.services.payout_retry_rules import is_permanent_failure, should_retry
from ridepay.services.payout_retry_service import PayoutRetryService, max_retries_message
from ridepay.utils.time import utcnow


class TestRetryRules:
    @pytest.mark.parametrize(
        "status,reason",
        [
            ("PENDING", None),
            ("ongoing", None),
            ("FAILED_LATER", "Service unavailable"),
            (None, "NOT_ENOUGH_FUNDS_IN_DISBURSEMENT_ACCOUNT"),
            (None, "internal processing error"),
        ],
    )
    def test_transient_failures_are_retried(self, status, reason):
        assert should_retry(status, reason) is True

    @pytest.mark.parametrize(
        "status,reason",
        [
            ("FAILED", "INTERNAL_ERROR"),
            ("REJECTED", None),
            (None, "PAYEE_NOT_ALLOWED_TO_RECEIVE"),
            (None, "NOT_ENOUGH_FUNDS"),
            (None, None),
            ("SOMETHING", "no idea"),
        ],
    )
    def test_permanent_or_unknown_failures_are_not_retried(self, status, reason):
        assert should_retry(status, reason) is False

    def test_permanent_marker_wins_over_retryable_marker_in_reason(self):
        assert should_retry(None, "TIMEOUT then ACCOUNT_NOT_FOUND") is False

    def test_is_permanent_failure(self):
        assert is_permanent_failure("EXPIRED") is True
        assert is_permanent_failure("PENDING", "ACCOUNT_NOT_FOUND") is False
        assert is_permanent_failure(None, "INVALID_CURRENCY") is True
        assert is_permanent_failure(None, "NOT_ENOUGH_FUNDS_IN_DISBURSEMENT_ACCOUNT") is False


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def retry_service(db, notifier):
    return PayoutRetryService(db, notification_service=notifier)


def _stuck_payout(records, minutes_ago=30, **metadata):
    booking = records.paid_booking()
    meta = {"retryCount": 0, **metadata}
    return records.payout(booking, created_at=utcnow() - timedelta(minutes=minutes_ago), metadata_=meta)


class TestRetryConditions:
    def test_retry_allowed_after_cooldown(self, records, retry_service):
        payout = _stuck_payout(records)

        decision = retry_service.check_retry_conditions(payout, "PENDING", None)

        assert decision.should_retry is True

    def test_cooldown_blocks_early_retry(self, records, retry_service):
        payout = _stuck_payout(records, lastRetryAttempt=utcnow().isoformat())

        decision = retry_service.check_retry_conditions(payout, "PENDING", None)

        assert decision.should_retry is False
        assert decision.reason == "Retry cooldown active"
        assert decision.minutes_remaining > 0

    def test_permanent_status_is_not_retried(self, records, retry_service):
        payout = _stuck_payout(records)

        assert retry_service.check_retry_conditions(payout, "REJECTED").should_retry is False

    def test_exhausted_payout_is_not_retried(self, records, retry_service):
        payout = _stuck_payout(records, retryCount=3)

        decision = retry_service.check_retry_conditions(payout, "PENDING")

        assert decision.to_dict()["reason"] == "Maximum retries reached"


class TestExecuteRetry:
    def test_successful_retry_swaps_transaction_and_counts(self, records, provider, retry_service):
        payout = _stuck_payout(records)
        provider.payout_response = ProviderResponse(
            success=True, message="ok", transaction_id="payout-ref-2"
        )

        result = retry_service.execute_retry(payout, "PENDING")

        assert result == {
            "success": True,
            "message": "ok",
            "transaction_id": "payout-ref-2",
            "retry_count": 1,
        }
        assert payout.transaction_id == "payout-ref-2"
        history = payout.metadata_["retryHistory"]
        assert history[0]["previous_transaction_id"] == "payout-ref-1"
        assert history[0]["new_transaction_id"] == "payout-ref-2"
        assert provider.calls[0]["reason"].endswith("(Retry 1)")

    def test_failed_retry_still_counts_attempt(self, records, provider, retry_service):
        payout = _stuck_payout(records)
        provider.payout_response = ProviderResponse.failure("Unable to check balance")

        result = retry_service.execute_retry(payout)

        assert result["success"] is False
        assert payout.retry_count == 1
        assert payout.transaction_id == "payout-ref-1"
        assert payout.metadata_["retryHistory"][0]["error"] == "Unable to check balance"

    def test_no_attempt_beyond_maximum(self, records, provider, retry_service):
        payout = _stuck_payout(records, retryCount=3)

        result = retry_service.execute_retry(payout)

        assert result["success"] is False
        assert provider.calls == []


class TestMaxRetriesReached:
    def test_closes_payout_once_and_notifies_once(self, records, retry_service, notifier):
        payout = _stuck_payout(records, retryCount=3)

        assert retry_service.handle_max_retries_reached(payout, "PENDING") is True
        assert retry_service.handle_max_retries_reached(payout, "PENDING") is False

        assert payout.status == PayoutStatus.FAILED.value
        assert payout.error_message == max_retries_message(3)
        assert payout.metadata_["maxRetriesReached"] is True
        notifier.send_payout_notification_if_needed.assert_called_once_with(
            payout, PayoutStatus.FAILED.value, NotificationSource.CRON, max_retries_message(3)
        )
