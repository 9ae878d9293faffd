"""pawaPay v2 aggregator client (deposits and payouts for MTN_CM / ORANGE_CM)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx
from pydantic import SecretStr

from ridepay.core.config import secret_or_plain, settings
from ridepay.core.enums import PaymentProvider
from ridepay.core.exceptions import ProviderException
from ridepay.services.failure_reason import failure_code, parse_failure_reason
from ridepay.utils.phone import format_phone, pawapay_provider_code, strip_special_characters

from .base import PaymentProviderClient, ProviderResponse

logger = logging.getLogger(__name__)

DEPOSITS_PATH = "/v2/deposits"
PAYOUTS_PATH = "/v2/payouts"
# pawaPay limits customerMessage to 22 characters.
CUSTOMER_MESSAGE_MAX = 22


class PawaPayClient(PaymentProviderClient):
    provider = PaymentProvider.PAWAPAY

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_token: str | SecretStr | None = None,
        callback_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url or settings.pawapay_base_url, timeout=timeout, transport=transport
        )
        self._api_token = secret_or_plain(api_token or settings.pawapay_api_token).strip()
        self.callback_url = callback_url or settings.pawapay_callback_url

    def _headers(self) -> Dict[str, str]:
        if not self._api_token:
            raise ProviderException("pawapay", "pawaPay API token is not configured")
        return {"Authorization": f"Bearer {self._api_token}", "Content-Type": "application/json"}

    @staticmethod
    def _account(phone_number: str) -> Dict[str, Any]:
        msisdn = format_phone(phone_number)
        return {
            "type": "MMO",
            "accountDetails": {"phoneNumber": msisdn, "provider": pawapay_provider_code(msisdn)},
        }

    @staticmethod
    def _customer_message(reason: str) -> str:
        return " ".join(strip_special_characters(reason).split())[:CUSTOMER_MESSAGE_MAX] or "Paiement"

    def payin(
        self,
        *,
        amount: float,
        phone_number: str,
        reason: str,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> ProviderResponse:
        deposit_id = str(uuid4())
        body: Dict[str, Any] = {
            "depositId": deposit_id,
            "payer": self._account(phone_number),
            "amount": str(amount),
            "currency": (currency or settings.default_currency).upper(),
            "clientReferenceId": str(uuid4()),
            "customerMessage": self._customer_message(reason),
        }
        if callback_url or self.callback_url:
            body["callbackUrl"] = callback_url or self.callback_url
        return self._initiate("payin", DEPOSITS_PATH, body, deposit_id, "depositId")

    def payout(self, *, amount: float, phone_number: str, reason: str) -> ProviderResponse:
        if settings.sandbox_payout_test_phone and not settings.is_production:
            phone_number = settings.sandbox_payout_test_phone
        payout_id = str(uuid4())
        body: Dict[str, Any] = {
            "payoutId": payout_id,
            "recipient": self._account(phone_number),
            "amount": str(amount),
            "currency": settings.default_currency,
            "clientReferenceId": str(uuid4()),
            "customerMessage": self._customer_message(reason),
        }
        return self._initiate("payout", PAYOUTS_PATH, body, payout_id, "payoutId")

    def _initiate(
        self, operation: str, path: str, body: Dict[str, Any], reference: str, id_key: str
    ) -> ProviderResponse:
        try:
            response = self._send(
                operation, "POST", f"{self._base_url}{path}", headers=self._headers(), json_body=body
            )
        except ProviderException as exc:
            return ProviderResponse.failure(exc.message)

        data = self._json(response)
        if not response.is_success:
            return ProviderResponse.failure(
                self._error_message(response, f"pawaPay API returned status {response.status_code}"),
                api_response=data,
            )

        status = str(data.get("status") or "ACCEPTED").upper()
        transaction_id = str(data.get(id_key) or reference)
        if status in ("REJECTED", "FAILED"):
            raw_reason = data.get("failureReason")
            return ProviderResponse.failure(
                parse_failure_reason(raw_reason),
                transaction_id=transaction_id,
                status=status,
                reason=failure_code(raw_reason) or None,
                api_response=data,
            )
        return ProviderResponse(
            success=True,
            message=f"{operation.capitalize()} initiated successfully",
            transaction_id=transaction_id,
            status=status,
            api_response=data,
        )

    def check_payment(self, transaction_id: str) -> ProviderResponse:
        return self._check("check_payment", f"{DEPOSITS_PATH}/{transaction_id}", transaction_id)

    def check_payout_status(self, transaction_id: str) -> ProviderResponse:
        return self._check("check_payout_status", f"{PAYOUTS_PATH}/{transaction_id}", transaction_id)

    def _check(self, operation: str, path: str, transaction_id: str) -> ProviderResponse:
        response = self._send(operation, "GET", f"{self._base_url}{path}", headers=self._headers())
        if response.status_code == 404:
            return ProviderResponse(
                success=True,
                message="Transaction not found",
                transaction_id=transaction_id,
                status="NOT_FOUND",
            )
        if not response.is_success:
            raise ProviderException(
                "pawapay",
                self._error_message(response, "Status check failed"),
                status_code=response.status_code,
            )

        body = self._json(response)
        record: Dict[str, Any] = body if isinstance(body, dict) else {}
        # v2 wraps the record: {"status": "FOUND", "data": {...}}
        if isinstance(record.get("data"), dict):
            record = record["data"]
        elif str(record.get("status") or "").upper() == "NOT_FOUND":
            return ProviderResponse(
                success=True,
                message="Transaction not found",
                transaction_id=transaction_id,
                status="NOT_FOUND",
                api_response=body,
            )

        raw_reason = record.get("failureReason")
        amount = record.get("amount")
        if isinstance(amount, dict):
            amount = amount.get("value")
        return ProviderResponse(
            success=True,
            message=parse_failure_reason(raw_reason) if raw_reason else "Transaction verified",
            transaction_id=transaction_id,
            status=record.get("status"),
            reason=failure_code(raw_reason) or None,
            api_response=body,
            amount=float(amount) if amount not in (None, "") else None,
        )
