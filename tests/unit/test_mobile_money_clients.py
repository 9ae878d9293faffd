from __future__ import annotations

import json

import httpx
from httpx import MockTransport, Response
import pytest

from ridepay.core.exceptions import ProviderException
from ridepay.integrations.payment_providers import (
    MTNMoMoClient,
    OrangeMoneyClient,
    PawaPayClient,
)

MTN_BASE = "https://mtn.test"
ORANGE_BASE = "https://orange.test/omcoreapis/1.0.2"
PAWAPAY_BASE = "https://pawapay.test"


def _mtn(handler, **kwargs) -> MTNMoMoClient:
    kwargs.setdefault("target_environment", "mtncameroon")
    return MTNMoMoClient(
        base_url=MTN_BASE,
        collection_subscription_key="col-sub",
        collection_api_user="col-user",
        collection_api_key="col-key",
        disbursement_subscription_key="dis-sub",
        disbursement_api_user="dis-user",
        disbursement_api_key="dis-key",
        callback_url="https://ridepay.test/callbacks/mtn",
        transport=MockTransport(handler),
        **kwargs,
    )


def _orange(handler) -> OrangeMoneyClient:
    return OrangeMoneyClient(
        base_url=ORANGE_BASE,
        token_url="https://orange.test/token",
        consumer_key="ck",
        consumer_secret="cs",
        api_username="user",
        api_password="pass",
        merchant_number="691000000",
        pin="1234",
        callback_url="https://ridepay.test/callbacks/orange",
        transport=MockTransport(handler),
    )


def _pawapay(handler, api_token="pp-token") -> PawaPayClient:
    return PawaPayClient(
        base_url=PAWAPAY_BASE, api_token=api_token, transport=MockTransport(handler)
    )


def test_mtn_payin_fetches_token_then_requests_to_pay():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        if request.url.path == "/collection/token/":
            return Response(200, json={"access_token": "tok-1"})
        return Response(202)

    result = _mtn(handler).payin(amount=5000, phone_number="677123456", reason="Réservation 12")

    assert result.success is True
    token_request, pay_request = seen
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert token_request.headers["Ocp-Apim-Subscription-Key"] == "col-sub"
    assert pay_request.url.path == "/collection/v1_0/requesttopay"
    assert pay_request.headers["Authorization"] == "Bearer tok-1"
    assert pay_request.headers["X-Reference-Id"] == result.transaction_id
    assert pay_request.headers["X-Callback-Url"] == "https://ridepay.test/callbacks/mtn"
    body = json.loads(pay_request.content)
    assert body["payer"]["partyId"] == "237677123456"
    assert body["currency"] == "XAF"
    assert body["amount"] == "5000"


def test_mtn_token_is_cached_per_product():
    token_calls = []

    def handler(request):
        if request.url.path.endswith("/token/"):
            token_calls.append(request.url.path)
            return Response(200, json={"access_token": "tok"})
        return Response(202)

    client = _mtn(handler)
    client.payin(amount=100, phone_number="677123456", reason="a")
    client.payin(amount=100, phone_number="677123456", reason="b")

    assert token_calls == ["/collection/token/"]


def test_mtn_sandbox_forces_eur():
    captured = {}

    def handler(request):
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        captured["body"] = json.loads(request.content)
        return Response(202)

    _mtn(handler, target_environment="sandbox").payin(
        amount=100, phone_number="677123456", reason="x", currency="xaf"
    )

    assert captured["body"]["currency"] == "EUR"


def test_mtn_payin_rejection_is_a_failure_response():
    def handler(request):
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        return Response(400, json={"message": "Invalid payer"})

    result = _mtn(handler).payin(amount=100, phone_number="677123456", reason="x")

    assert result.success is False
    assert "Invalid payer" in result.message


def test_mtn_payout_checks_balance_first():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        if request.url.path.endswith("/account/balance"):
            return Response(200, json={"availableBalance": "100"})
        return Response(202)

    result = _mtn(handler).payout(amount=5000, phone_number="677123456", reason="payout")

    assert result.success is False
    assert result.reason == "INSUFFICIENT_BALANCE"
    assert "/disbursement/v1_0/transfer" not in paths


def test_mtn_payout_transfers_when_funded():
    def handler(request):
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        if request.url.path.endswith("/account/balance"):
            return Response(200, json={"availableBalance": "100000"})
        assert request.url.path == "/disbursement/v1_0/transfer"
        assert request.headers["Ocp-Apim-Subscription-Key"] == "dis-sub"
        return Response(202)

    result = _mtn(handler).payout(amount=5000, phone_number="677123456", reason="payout")

    assert result.success is True
    assert result.transaction_id


def test_mtn_status_check_reads_status_and_reason():
    def handler(request):
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        return Response(
            200, json={"status": "FAILED", "reason": {"code": "PAYER_NOT_FOUND"}, "amount": "100"}
        )

    result = _mtn(handler).check_payment("ref-1")

    assert result.status == "FAILED"
    assert result.reason == "PAYER_NOT_FOUND"
    assert result.amount == 100.0


def test_mtn_unknown_transaction_is_not_found():
    def handler(request):
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        return Response(404)

    assert _mtn(handler).check_payout_status("ref-1").status == "NOT_FOUND"


def test_mtn_status_check_server_error_raises():
    def handler(request):
        if request.url.path.endswith("/token/"):
            return Response(200, json={"access_token": "tok"})
        return Response(500, text="boom")

    with pytest.raises(ProviderException):
        _mtn(handler).check_payment("ref-1")


def test_mtn_unreachable_host_is_a_failure_response():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    result = _mtn(handler).payin(amount=100, phone_number="677123456", reason="x")

    assert result.success is False
    assert "Failed to reach mtn" in result.message


def test_orange_payin_uses_pay_token_from_init():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if request.url.path == "/token":
            return Response(200, json={"access_token": "otok", "expires_in": 3600})
        if request.url.path.endswith("/mp/init"):
            return Response(200, json={"data": {"payToken": "MP-42"}})
        body = json.loads(request.content)
        assert body["payToken"] == "MP-42"
        assert body["subscriberMsisdn"] == "237699123456"
        assert body["amount"] == "2500"
        assert body["notifUrl"] == "https://ridepay.test/callbacks/orange"
        return Response(200, json={"data": {"status": "PENDING"}})

    result = _orange(handler).payin(amount=2500.0, phone_number="699123456", reason="ride")

    assert result.success is True
    assert result.transaction_id == "MP-42"
    assert calls[-1].endswith("/mp/pay")


def test_orange_init_failure_is_a_failure_response():
    def handler(request):
        if request.url.path == "/token":
            return Response(200, json={"access_token": "otok"})
        return Response(401, json={"message": "bad auth"})

    result = _orange(handler).payout(amount=100, phone_number="699123456", reason="x")

    assert result.success is False
    assert result.transaction_id is None


def test_orange_status_check_reads_data_block():
    def handler(request):
        if request.url.path == "/token":
            return Response(200, json={"access_token": "otok"})
        assert request.url.path.endswith("/mp/paymentstatus/MP-42")
        return Response(
            200, json={"data": {"status": "FAILED", "inittxnmessage": "Solde insuffisant"}}
        )

    result = _orange(handler).check_payment("MP-42")

    assert result.status == "FAILED"
    assert result.reason == "Solde insuffisant"


def test_pawapay_deposit_accepted():
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return Response(200, json={"depositId": captured["body"]["depositId"], "status": "ACCEPTED"})

    result = _pawapay(handler).payin(
        amount=2500, phone_number="699123456", reason="Trajet Douala - Yaoundé en bus"
    )

    assert result.success is True
    assert result.status == "ACCEPTED"
    assert captured["auth"] == "Bearer pp-token"
    assert captured["body"]["payer"]["accountDetails"] == {
        "phoneNumber": "237699123456",
        "provider": "ORANGE_CM",
    }
    assert len(captured["body"]["customerMessage"]) <= 22


def test_pawapay_rejected_deposit_carries_failure_code():
    def handler(request):
        return Response(
            200,
            json={
                "status": "REJECTED",
                "failureReason": {"failureCode": "INVALID_PHONE_NUMBER", "failureMessage": "Bad"},
            },
        )

    result = _pawapay(handler).payin(amount=100, phone_number="677123456", reason="x")

    assert result.success is False
    assert result.message == "Bad"
    assert result.reason == "INVALID_PHONE_NUMBER"


def test_pawapay_status_is_unwrapped_from_data():
    def handler(request):
        assert request.url.path == "/v2/payouts/po-1"
        return Response(
            200, json={"status": "FOUND", "data": {"status": "COMPLETED", "amount": "4750"}}
        )

    result = _pawapay(handler).check_payout_status("po-1")

    assert result.status == "COMPLETED"
    assert result.amount == 4750.0


def test_pawapay_not_found_envelope():
    def handler(request):
        return Response(200, json={"status": "NOT_FOUND"})

    assert _pawapay(handler).check_payment("dep-1").status == "NOT_FOUND"


def test_pawapay_without_token_fails_without_calling_out():
    def handler(request):
        raise AssertionError("no request expected")

    result = _pawapay(handler, api_token="").payin(amount=1, phone_number="677123456", reason="x")

    assert result.success is False
    assert "not configured" in result.message
