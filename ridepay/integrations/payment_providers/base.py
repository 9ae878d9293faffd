"""Shared envelope and HTTP plumbing for the mobile-money provider clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ridepay.core.enums import PaymentProvider
from ridepay.core.exceptions import ProviderException
from ridepay.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


@dataclass
class ProviderResponse:
    """
    Normalized result of any provider call.

    `transaction_id` is the provider reference later used for status checks
    (MTN X-Reference-Id, Orange payToken, pawaPay deposit/payout id).
    `status` is the raw provider status string for status checks.
    """

    success: bool
    message: str = ""
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    api_response: Any = None
    amount: Optional[float] = None

    @classmethod
    def failure(cls, message: str, **kwargs: Any) -> "ProviderResponse":
        return cls(success=False, message=message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "transactionId": self.transaction_id,
            "status": self.status,
            "reason": self.reason,
            "apiResponse": self.api_response,
        }


class PaymentProviderClient(ABC):
    """Base for MTN, Orange Money and pawaPay adapters."""

    provider: PaymentProvider

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @abstractmethod
    def payin(
        self,
        *,
        amount: float,
        phone_number: str,
        reason: str,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> ProviderResponse:
        """Ask the subscriber to pay; returns the provider reference on acceptance."""

    @abstractmethod
    def check_payment(self, transaction_id: str) -> ProviderResponse:
        """Raw collection status. Raises ProviderException when the provider is unreachable."""

    @abstractmethod
    def payout(self, *, amount: float, phone_number: str, reason: str) -> ProviderResponse:
        """Disburse to a subscriber."""

    @abstractmethod
    def check_payout_status(self, transaction_id: str) -> ProviderResponse:
        """Raw disbursement status. Raises ProviderException when the provider is unreachable."""

    def refund(self, *, amount: float, phone_number: str, reason: str) -> ProviderResponse:
        """Refunds are disbursements back to the passenger."""
        return self.payout(amount=amount, phone_number=phone_number, reason=reason)

    def _http_client(self, **kwargs: Any) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport, **kwargs)

    def _send(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        auth: Optional[httpx.Auth] = None,
    ) -> httpx.Response:
        """Send one request; transport failures become ProviderException."""
        provider = self.provider.value
        with self._http_client(auth=auth) as client:
            try:
                response = client.request(method, url, headers=headers, json=json_body, data=data)
            except httpx.RequestError as exc:
                prometheus_metrics.record_provider_request(provider, operation, "network_error")
                logger.error("%s request failure for %s %s: %s", provider, method, url, str(exc))
                raise ProviderException(provider, f"Failed to reach {provider}: {exc}") from exc

        outcome = "success" if response.is_success else f"http_{response.status_code}"
        prometheus_metrics.record_provider_request(provider, operation, outcome)
        if not response.is_success:
            logger.warning(
                "%s %s returned %s: %s",
                provider,
                operation,
                response.status_code,
                response.text[:500],
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            return {"raw": response.text}

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        body = PaymentProviderClient._json(response)
        if isinstance(body, dict):
            for key in ("message", "error", "raw"):
                if body.get(key):
                    return f"{default}: {body[key]}"
        return f"{default} (HTTP {response.status_code})"
