"""
Tests for provider status mapping, failure-reason messages and phone helpers.
"""

import pytest

from ridepay.core.enums import PaymentProvider, PaymentStatus, PayoutStatus, RefundStatus
from ridepay.services.failure_reason import (
    GENERIC_FAILURE_MESSAGE,
    INSUFFICIENT_BALANCE_MESSAGE,
    failure_code,
    parse_failure_reason,
)
from ridepay.services.payment_status_mapper import (
    map_payment_status,
    map_payout_status,
    map_refund_status,
    normalize_provider_status,
)
from ridepay.utils.phone import (
    format_phone,
    is_mtn_phone_number,
    is_orange_phone_number,
    pawapay_provider_code,
    remove_calling_code,
    strip_special_characters,
)


class TestMapPaymentStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("SUCCESSFUL", PaymentStatus.COMPLETED),
            ("successful", PaymentStatus.COMPLETED),
            ("FAILED", PaymentStatus.FAILED),
            ("REJECTED", PaymentStatus.FAILED),
            ("EXPIRED", PaymentStatus.FAILED),
            ("PENDING", PaymentStatus.PROCESSING),
            ("ONGOING", PaymentStatus.PROCESSING),
            ("DELAYED", PaymentStatus.PROCESSING),
            ("SOMETHING_NEW", PaymentStatus.PENDING),
            (None, PaymentStatus.PENDING),
        ],
    )
    def test_mtn(self, raw, expected):
        assert map_payment_status("mtn", raw) == expected

    def test_orange_spelling_and_initiated(self):
        assert map_payment_status("orange", "SUCCESSFULL") == PaymentStatus.COMPLETED
        assert map_payment_status(PaymentProvider.ORANGE, "INITIATED") == PaymentStatus.PENDING

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("COMPLETED", PaymentStatus.COMPLETED),
            ("ACCEPTED", PaymentStatus.PROCESSING),
            ("SUBMITTED", PaymentStatus.PROCESSING),
            ("ENQUEUED", PaymentStatus.PROCESSING),
            ("FAILED", PaymentStatus.FAILED),
            ("DUPLICATE_IGNORED", PaymentStatus.PENDING),
        ],
    )
    def test_pawapay(self, raw, expected):
        assert map_payment_status("pawapay", raw) == expected

    def test_unknown_provider_falls_back_to_mtn_vocabulary(self):
        assert map_payment_status("wave", "SUCCESSFUL") == PaymentStatus.COMPLETED

    def test_unknown_status_never_completes(self):
        for provider in ("mtn", "orange", "pawapay"):
            assert map_payment_status(provider, "???") != PaymentStatus.COMPLETED

    def test_normalize(self):
        assert normalize_provider_status("  successfull ") == "SUCCESSFUL"
        assert normalize_provider_status(None) == ""


class TestMapPayoutAndRefundStatus:
    def test_submitted_payout_is_at_least_processing(self):
        assert map_payout_status("mtn", "whatever") == PayoutStatus.PROCESSING
        assert (
            map_payout_status("mtn", "whatever", has_transaction_id=False)
            == PayoutStatus.PENDING
        )

    def test_terminal_payout_statuses(self):
        assert map_payout_status("pawapay", "COMPLETED") == PayoutStatus.COMPLETED
        assert map_payout_status("orange", "FAILED") == PayoutStatus.FAILED

    def test_refund_statuses(self):
        assert map_refund_status("mtn", "SUCCESSFUL") == RefundStatus.COMPLETED
        assert map_refund_status("mtn", "REJECTED") == RefundStatus.FAILED
        assert map_refund_status("pawapay", "ACCEPTED") == RefundStatus.PROCESSING
        assert map_refund_status("mtn", None) == RefundStatus.PROCESSING


class TestFailureReason:
    def test_insufficient_balance_has_dedicated_message(self):
        reason = {"failureCode": "INSUFFICIENT_BALANCE", "failureMessage": "low"}

        assert parse_failure_reason(reason) == INSUFFICIENT_BALANCE_MESSAGE

    def test_message_is_preferred_over_code(self):
        reason = {"failureCode": "PAYER_NOT_FOUND", "failureMessage": "Unknown wallet"}

        assert parse_failure_reason(reason) == "Unknown wallet"

    def test_code_without_message(self):
        assert "PAYER_LIMIT_REACHED" in parse_failure_reason({"failureCode": "PAYER_LIMIT_REACHED"})

    def test_json_string_is_decoded(self):
        raw = '{"failureCode": "INSUFFICIENT_BALANCE"}'

        assert parse_failure_reason(raw) == INSUFFICIENT_BALANCE_MESSAGE
        assert failure_code(raw) == "INSUFFICIENT_BALANCE"

    def test_plain_string_is_returned_as_is(self):
        assert parse_failure_reason("Timeout at operator") == "Timeout at operator"

    @pytest.mark.parametrize("raw", [None, "", {}, 42])
    def test_empty_or_odd_values_are_generic(self, raw):
        assert parse_failure_reason(raw) == GENERIC_FAILURE_MESSAGE

    def test_failure_code_of_non_string(self):
        assert failure_code(None) == ""


class TestPhoneHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("677123456", "677123456"),
            ("237677123456", "677123456"),
            ("+237 677 12 34 56", "677123456"),
            ("12345", None),
            (None, None),
        ],
    )
    def test_remove_calling_code(self, raw, expected):
        assert remove_calling_code(raw) == expected

    @pytest.mark.parametrize("phone", ["677123456", "680123456", "654123456", "237671234567"])
    def test_mtn_numbers(self, phone):
        assert is_mtn_phone_number(phone)
        assert not is_orange_phone_number(phone)

    @pytest.mark.parametrize("phone", ["699123456", "655123456", "+237 690 00 00 00"])
    def test_orange_numbers(self, phone):
        assert is_orange_phone_number(phone)
        assert not is_mtn_phone_number(phone)

    def test_unknown_operator(self):
        assert not is_mtn_phone_number("622123456")
        assert not is_orange_phone_number("622123456")
        assert pawapay_provider_code("622123456") == "MTN_CM"

    def test_pawapay_correspondent(self):
        assert pawapay_provider_code("699123456") == "ORANGE_CM"
        assert pawapay_provider_code("677123456") == "MTN_CM"

    def test_format_phone(self):
        assert format_phone("677 12 34 56") == "237677123456"
        assert format_phone("+237677123456") == "237677123456"

    def test_strip_special_characters(self):
        assert strip_special_characters("Réservation #12") == "Reservation    "
