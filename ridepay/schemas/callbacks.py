"""Provider webhook payloads."""

from typing import Any, Dict, Optional

from pydantic import Field

from ._strict_base import ProviderPayload, StrictModel


class MtnCallbackPayload(ProviderPayload):
    """MTN MoMo collection and disbursement callback body."""

    external_id: Optional[str] = Field(default=None, alias="externalId")
    financial_transaction_id: Optional[str] = Field(default=None, alias="financialTransactionId")
    reference_id: Optional[str] = Field(default=None, alias="referenceId")
    status: Optional[str] = None
    reason: Optional[Any] = None
    amount: Optional[str] = None
    currency: Optional[str] = None


class OrangeCallbackData(ProviderPayload):
    pay_token: Optional[str] = Field(default=None, alias="payToken")
    status: Optional[str] = None
    txnid: Optional[str] = None
    message: Optional[str] = None


class OrangeCallbackPayload(OrangeCallbackData):
    """Orange sends the fields either under `data` or at the top level."""

    data: Optional[OrangeCallbackData] = None

    def resolved(self) -> OrangeCallbackData:
        if self.data is not None:
            return self.data
        return OrangeCallbackData(
            payToken=self.pay_token, status=self.status, txnid=self.txnid, message=self.message
        )


class PawapayCallbackPayload(ProviderPayload):
    deposit_id: Optional[str] = Field(default=None, alias="depositId")
    payout_id: Optional[str] = Field(default=None, alias="payoutId")
    refund_id: Optional[str] = Field(default=None, alias="refundId")
    status: Optional[str] = None
    failure_reason: Optional[Any] = Field(default=None, alias="failureReason")
    amount: Optional[str] = None
    currency: Optional[str] = None


class RefundCallbackPayload(ProviderPayload):
    transaction_id: Optional[str] = None
    external_id: Optional[str] = Field(default=None, alias="externalId")
    payout_id: Optional[str] = Field(default=None, alias="payoutId")
    status: Optional[str] = None
    provider: Optional[str] = None

    @property
    def reference(self) -> Optional[str]:
        return self.transaction_id or self.external_id or self.payout_id


class CallbackAck(StrictModel):
    received: bool = True
    handled: bool = False
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
