"""MTN Mobile Money (Collection + Disbursement) client."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

import httpx
from pydantic import SecretStr

from ridepay.core.config import secret_or_plain, settings
from ridepay.core.enums import PaymentProvider
from ridepay.core.exceptions import ProviderException
from ridepay.utils.phone import format_phone, strip_special_characters

from .base import PaymentProviderClient, ProviderResponse

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 3600
COLLECTION = "collection"
DISBURSEMENT = "disbursement"


class MTNTokenService:
    """Basic-auth token exchange, cached for one hour per product."""

    def __init__(self, client: "MTNMoMoClient") -> None:
        self._client = client
        self._cache: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get_token(self, product: str) -> str:
        with self._lock:
            cached = self._cache.get(product)
            if cached and cached[1] > time.monotonic():
                return cached[0]

        api_user, api_key, subscription_key = self._client.credentials(product)
        if not api_user or not api_key:
            raise ProviderException("mtn", f"MTN {product} credentials are not configured")

        response = self._client._send(
            f"{product}_token",
            "POST",
            f"{self._client.base_url}/{product}/token/",
            headers={"Ocp-Apim-Subscription-Key": subscription_key},
            auth=httpx.BasicAuth(api_user, api_key),
        )
        if response.status_code != 200:
            raise ProviderException(
                "mtn",
                f"Unable to generate {product} token",
                status_code=response.status_code,
            )
        token = str(self._client._json(response).get("access_token") or "")
        if not token:
            raise ProviderException("mtn", f"MTN {product} token response had no access_token")

        with self._lock:
            self._cache[product] = (token, time.monotonic() + TOKEN_TTL_SECONDS)
        return token

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


class MTNMoMoClient(PaymentProviderClient):
    provider = PaymentProvider.MTN

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        target_environment: Optional[str] = None,
        collection_subscription_key: str | SecretStr | None = None,
        collection_api_user: Optional[str] = None,
        collection_api_key: str | SecretStr | None = None,
        disbursement_subscription_key: str | SecretStr | None = None,
        disbursement_api_user: Optional[str] = None,
        disbursement_api_key: str | SecretStr | None = None,
        callback_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url or settings.mtn_base_url, timeout=timeout, transport=transport
        )
        self.target_environment = target_environment or settings.mtn_target_environment
        self._collection = (
            collection_api_user or settings.mtn_collection_api_user or "",
            secret_or_plain(collection_api_key or settings.mtn_collection_api_key),
            secret_or_plain(
                collection_subscription_key or settings.mtn_collection_subscription_key
            ),
        )
        collection_key = self._collection[2]
        self._disbursement = (
            disbursement_api_user or settings.mtn_disbursement_api_user or "",
            secret_or_plain(disbursement_api_key or settings.mtn_disbursement_api_key),
            secret_or_plain(
                disbursement_subscription_key or settings.mtn_disbursement_subscription_key
            )
            or collection_key,
        )
        self.callback_url = callback_url or settings.mtn_callback_url
        self.tokens = MTNTokenService(self)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_sandbox(self) -> bool:
        return self.target_environment == "sandbox"

    def credentials(self, product: str) -> Tuple[str, str, str]:
        return self._collection if product == COLLECTION else self._disbursement

    def _headers(self, product: str, token: str, **extra: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "X-Target-Environment": self.target_environment,
            "Ocp-Apim-Subscription-Key": self.credentials(product)[2],
        }
        headers.update(extra)
        return headers

    def _currency(self, requested: Optional[str]) -> str:
        # The sandbox only accepts EUR.
        if self.is_sandbox:
            return "EUR"
        return (requested or settings.default_currency).upper()

    def payin(
        self,
        *,
        amount: float,
        phone_number: str,
        reason: str,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> ProviderResponse:
        reference = str(uuid4())
        description = strip_special_characters(reason)
        body = {
            "amount": str(amount),
            "currency": self._currency(currency),
            "externalId": reference,
            "payer": {"partyIdType": "MSISDN", "partyId": format_phone(phone_number)},
            "payerMessage": description,
            "payeeNote": description,
        }
        try:
            token = self.tokens.get_token(COLLECTION)
            extra = {"X-Reference-Id": reference}
            if callback_url or self.callback_url:
                extra["X-Callback-Url"] = callback_url or self.callback_url or ""
            response = self._send(
                "payin",
                "POST",
                f"{self._base_url}/collection/v1_0/requesttopay",
                headers=self._headers(COLLECTION, token, **extra),
                json_body=body,
            )
        except ProviderException as exc:
            return ProviderResponse.failure(exc.message)

        if response.status_code == 202:
            return ProviderResponse(
                success=True,
                message="Payment initiated successfully",
                transaction_id=reference,
                api_response={"status": 202, "referenceId": reference, "externalId": reference},
            )
        return ProviderResponse.failure(
            self._error_message(response, f"MTN API returned status {response.status_code}"),
            api_response=self._json(response),
        )

    def check_payment(self, transaction_id: str) -> ProviderResponse:
        token = self.tokens.get_token(COLLECTION)
        response = self._send(
            "check_payment",
            "GET",
            f"{self._base_url}/collection/v1_0/requesttopay/{transaction_id}",
            headers=self._headers(COLLECTION, token),
        )
        return self._status_response(response, transaction_id)

    def payout(self, *, amount: float, phone_number: str, reason: str) -> ProviderResponse:
        try:
            token = self.tokens.get_token(DISBURSEMENT)
            balance = self._available_balance(token)
        except ProviderException as exc:
            return ProviderResponse.failure(exc.message)

        if balance is None:
            return ProviderResponse.failure("Unable to check balance")
        if balance < amount:
            return ProviderResponse.failure(
                "Insufficient balance",
                status="FAILED",
                reason="INSUFFICIENT_BALANCE",
                api_response={"availableBalance": balance},
            )

        reference = str(uuid4())
        description = strip_special_characters(reason)
        body = {
            "amount": str(amount),
            "currency": self._currency(None),
            "externalId": reference,
            "payee": {"partyIdType": "MSISDN", "partyId": format_phone(phone_number)},
            "payerMessage": description,
            "payeeNote": description,
        }
        extra = {"X-Reference-Id": reference}
        if self.callback_url:
            extra["X-Callback-Url"] = self.callback_url
        try:
            response = self._send(
                "payout",
                "POST",
                f"{self._base_url}/disbursement/v1_0/transfer",
                headers=self._headers(DISBURSEMENT, token, **extra),
                json_body=body,
            )
        except ProviderException as exc:
            return ProviderResponse.failure(exc.message)

        if response.status_code == 202:
            return ProviderResponse(
                success=True,
                message="Payout initiated successfully",
                transaction_id=reference,
                api_response={"status": 202, "referenceId": reference, "externalId": reference},
            )
        return ProviderResponse.failure(
            self._error_message(response, "Transfer request failed"),
            api_response=self._json(response),
        )

    def check_payout_status(self, transaction_id: str) -> ProviderResponse:
        token = self.tokens.get_token(DISBURSEMENT)
        response = self._send(
            "check_payout_status",
            "GET",
            f"{self._base_url}/disbursement/v1_0/transfer/{transaction_id}",
            headers=self._headers(DISBURSEMENT, token),
        )
        return self._status_response(response, transaction_id)

    def _available_balance(self, token: str) -> Optional[float]:
        response = self._send(
            "balance",
            "GET",
            f"{self._base_url}/disbursement/v1_0/account/balance",
            headers=self._headers(DISBURSEMENT, token),
        )
        if response.status_code != 200:
            return None
        try:
            return float(self._json(response).get("availableBalance"))
        except (TypeError, ValueError):
            return None

    def _status_response(self, response: httpx.Response, transaction_id: str) -> ProviderResponse:
        if response.status_code == 404:
            return ProviderResponse(
                success=True,
                message="Transaction not found",
                transaction_id=transaction_id,
                status="NOT_FOUND",
            )
        if response.status_code != 200:
            raise ProviderException(
                "mtn",
                self._error_message(response, "Unknown status"),
                status_code=response.status_code,
            )
        data: Dict[str, Any] = self._json(response)
        reason = data.get("reason")
        if isinstance(reason, dict):
            reason = reason.get("code") or reason.get("message")
        amount = data.get("amount")
        return ProviderResponse(
            success=True,
            message="Transaction verified",
            transaction_id=transaction_id,
            status=data.get("status"),
            reason=str(reason) if reason else None,
            api_response=data,
            amount=float(amount) if amount not in (None, "") else None,
        )
