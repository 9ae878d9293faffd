"""Orange Money Cameroon (merchant payment + cashin) client."""

from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import SecretStr

from ridepay.core.config import secret_or_plain, settings
from ridepay.core.enums import PaymentProvider
from ridepay.core.exceptions import ProviderException
from ridepay.utils.phone import format_phone, random_id, strip_special_characters

from .base import PaymentProviderClient, ProviderResponse

logger = logging.getLogger(__name__)


def _amount_str(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


class OrangeMoneyClient(PaymentProviderClient):
    """
    Two-step flows: `mp/init` then `mp/pay` for collections, `cashin/init`
    then `cashin/pay` for disbursements. The payToken from the init step is
    the transaction reference.
    """

    provider = PaymentProvider.ORANGE

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token_url: Optional[str] = None,
        consumer_key: Optional[str] = None,
        consumer_secret: str | SecretStr | None = None,
        api_username: Optional[str] = None,
        api_password: str | SecretStr | None = None,
        merchant_number: Optional[str] = None,
        pin: str | SecretStr | None = None,
        callback_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url or settings.orange_base_url, timeout=timeout, transport=transport
        )
        self._token_url = token_url or settings.orange_token_url
        self._consumer_key = consumer_key or settings.orange_consumer_key or ""
        self._consumer_secret = secret_or_plain(consumer_secret or settings.orange_consumer_secret)
        self._api_username = api_username or settings.orange_api_username or ""
        self._api_password = secret_or_plain(api_password or settings.orange_api_password)
        self._merchant_number = merchant_number or settings.orange_merchant_number or ""
        self._pin = secret_or_plain(pin or settings.orange_pin)
        self.callback_url = callback_url or settings.orange_callback_url
        self._token: Optional[Tuple[str, float]] = None
        self._token_lock = threading.Lock()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and self._token[1] > time.monotonic():
                return self._token[0]

        if not self._consumer_key or not self._consumer_secret:
            raise ProviderException("orange", "Orange Money OAuth credentials are not configured")
        response = self._send(
            "token",
            "POST",
            self._token_url,
            data={"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(self._consumer_key, self._consumer_secret),
        )
        if response.status_code != 200:
            raise ProviderException(
                "orange", "Unable to generate Orange token", status_code=response.status_code
            )
        body = self._json(response)
        token = str(body.get("access_token") or "")
        if not token:
            raise ProviderException("orange", "Orange token response had no access_token")
        try:
            expires_in = int(body.get("expires_in") or 3600)
        except (TypeError, ValueError):
            expires_in = 3600
        with self._token_lock:
            # Renew 30s before expiry.
            self._token = (token, time.monotonic() + max(expires_in - 30, 30))
        return token

    def _headers(self, token: str) -> Dict[str, str]:
        x_auth = base64.b64encode(f"{self._api_username}:{self._api_password}".encode()).decode()
        return {
            "Authorization": f"Bearer {token}",
            "X-AUTH-TOKEN": x_auth,
            "Content-Type": "application/json",
        }

    def _init_pay_token(self, operation: str, path: str, token: str) -> str:
        response = self._send(operation, "POST", self._url(path), headers=self._headers(token))
        if response.status_code != 200:
            raise ProviderException(
                "orange",
                self._error_message(response, f"Unable to initialize {operation}"),
                status_code=response.status_code,
            )
        pay_token = (self._json(response).get("data") or {}).get("payToken")
        if not pay_token:
            raise ProviderException("orange", f"Orange {operation} returned no payToken")
        return str(pay_token)

    def payin(
        self,
        *,
        amount: float,
        phone_number: str,
        reason: str,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> ProviderResponse:
        pay_token: Optional[str] = None
        try:
            token = self._access_token()
            pay_token = self._init_pay_token("payin_init", "mp/init", token)
            body = {
                "notifUrl": callback_url or self.callback_url or "",
                "channelUserMsisdn": self._merchant_number,
                "amount": _amount_str(amount),
                "subscriberMsisdn": format_phone(phone_number),
                "pin": self._pin,
                "orderId": random_id(15),
                "description": strip_special_characters(reason),
                "payToken": pay_token,
            }
            response = self._send(
                "payin", "POST", self._url("mp/pay"), headers=self._headers(token), json_body=body
            )
        except ProviderException as exc:
            return ProviderResponse.failure(exc.message, transaction_id=pay_token)

        data = self._json(response)
        if response.status_code == 200:
            return ProviderResponse(
                success=True,
                message="Payment initiated successfully",
                transaction_id=pay_token,
                api_response=data,
            )
        message = data.get("message") if isinstance(data, dict) else None
        return ProviderResponse.failure(
            message or "Payment failed", transaction_id=pay_token, api_response=data
        )

    def payout(self, *, amount: float, phone_number: str, reason: str) -> ProviderResponse:
        pay_token: Optional[str] = None
        try:
            token = self._access_token()
            pay_token = self._init_pay_token("payout_init", "cashin/init", token)
            body = {
                "channelUserMsisdn": self._merchant_number,
                "amount": _amount_str(amount),
                "subscriberMsisdn": format_phone(phone_number),
                "pin": self._pin,
                "orderId": random_id(15),
                "description": strip_special_characters(reason),
                "payToken": pay_token,
            }
            response = self._send(
                "payout",
                "POST",
                self._url("cashin/pay"),
                headers=self._headers(token),
                json_body=body,
            )
        except ProviderException as exc:
            return ProviderResponse.failure(exc.message, transaction_id=pay_token)

        data = self._json(response)
        if response.status_code == 200:
            return ProviderResponse(
                success=True,
                message="Payout initiated successfully",
                transaction_id=pay_token,
                api_response=data,
            )
        return ProviderResponse.failure(
            "Payout request failed", transaction_id=pay_token, api_response=data
        )

    def check_payment(self, transaction_id: str) -> ProviderResponse:
        return self._check("check_payment", f"mp/paymentstatus/{transaction_id}", transaction_id)

    def check_payout_status(self, transaction_id: str) -> ProviderResponse:
        return self._check(
            "check_payout_status", f"cashin/paymentstatus/{transaction_id}", transaction_id
        )

    def _check(self, operation: str, path: str, transaction_id: str) -> ProviderResponse:
        token = self._access_token()
        response = self._send(operation, "GET", self._url(path), headers=self._headers(token))
        if response.status_code != 200:
            raise ProviderException(
                "orange",
                self._error_message(response, "Unknown status"),
                status_code=response.status_code,
            )
        body = self._json(response)
        data: Dict[str, Any] = (body.get("data") or {}) if isinstance(body, dict) else {}
        amount = data.get("amount")
        return ProviderResponse(
            success=True,
            message=data.get("confirmtxnmessage") or "Transaction verified",
            transaction_id=transaction_id,
            status=data.get("status"),
            reason=data.get("inittxnmessage") if data.get("status") == "FAILED" else None,
            api_response=body,
            amount=float(amount) if amount not in (None, "") else None,
        )
