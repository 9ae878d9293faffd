# ridepay/services/callback_service.py
"""
Callback Service.

Ingests provider webhooks. Each handler locates the payment, payout or refund
the provider is talking about, maps the provider status and hands it to the
same services the reconciliation sweep uses. Handlers never raise: providers
retry on non-2xx answers, so processing errors are logged and acknowledged.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationSource, PaymentProvider, PaymentStatus
from ..core.exceptions import DomainException
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..schemas.callbacks import (
    CallbackAck,
    MtnCallbackPayload,
    OrangeCallbackPayload,
    PawapayCallbackPayload,
    RefundCallbackPayload,
)
from ..utils.time import utcnow
from .base import BaseService
from .failure_reason import parse_failure_reason
from .payment_orchestration_service import PaymentOrchestrationService
from .payment_status_mapper import map_payment_status, map_payout_status, map_refund_status
from .payout_reconciliation_service import PayoutReconciliationService
from .refund_status_service import RefundStatusService

logger = logging.getLogger(__name__)


class CallbackService(BaseService):
    def __init__(
        self,
        db: Session,
        orchestration_service: Optional[PaymentOrchestrationService] = None,
        payout_reconciliation: Optional[PayoutReconciliationService] = None,
        refund_status_service: Optional[RefundStatusService] = None,
    ) -> None:
        super().__init__(db)
        self.orchestration_service = orchestration_service or PaymentOrchestrationService(db)
        self.payout_reconciliation = payout_reconciliation or PayoutReconciliationService(db)
        self.refund_status_service = refund_status_service or RefundStatusService(
            db, orchestration_service=self.orchestration_service
        )
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.payout_repository = RepositoryFactory.create_payout_repository(db)

    def _guarded(self, label: str, handler: Callable[[], CallbackAck]) -> CallbackAck:
        try:
            return handler()
        except DomainException as exc:
            self.db.rollback()
            self.logger.error("%s callback rejected: %s", label, exc.message)
            return CallbackAck(handled=False, message=exc.message)
        except Exception as exc:
            self.db.rollback()
            self.logger.error("%s callback processing failed: %s", label, exc, exc_info=True)
            return CallbackAck(handled=False, message="Callback processing failed")

    def _find_payment(self, *references: Optional[str]) -> Optional[Payment]:
        for reference in references:
            if not reference:
                continue
            payment = self.payment_repository.get_by_transaction_id(reference)
            if payment is None:
                payment = self.payment_repository.get_by_id(reference)
            if payment is not None:
                return payment
        return None

    def _apply_payment_status(
        self,
        payment: Payment,
        provider: PaymentProvider,
        raw_status: Optional[str],
        metadata: Dict[str, Any],
        source: str,
    ) -> CallbackAck:
        mapped = map_payment_status(provider, raw_status)
        if mapped.value == payment.status:
            self.logger.info("Payment %s already %s; callback ignored", payment.id, payment.status)
            return CallbackAck(
                handled=True,
                entity="payment",
                entity_id=payment.id,
                status=payment.status,
                message="Status unchanged",
            )
        if mapped == PaymentStatus.FAILED and not metadata.get("error_message"):
            metadata["error_message"] = "Payment failed"
        change = self.orchestration_service.apply_provider_status(
            payment.id, mapped.value, metadata, source=source
        )
        return CallbackAck(
            handled=True,
            entity="payment",
            entity_id=payment.id,
            status=change.new_status,
            details={"previous_status": change.previous_status, "changed": change.changed},
        )

    def _apply_refund_status(
        self,
        provider: PaymentProvider,
        transaction_id: Optional[str],
        raw_status: Optional[str],
        payload: Dict[str, Any],
    ) -> CallbackAck:
        if not transaction_id:
            return CallbackAck(handled=False, message="No transaction reference in callback")
        refund = self.refund_status_service.update_refund_by_transaction_id(
            transaction_id,
            map_refund_status(provider, raw_status).value,
            {
                "source": "callback",
                "provider_status": raw_status,
                "callback_payload": payload,
                "update_even_if_same": True,
            },
        )
        if refund is None:
            self.logger.warning("No payout or refund matches transaction %s", transaction_id)
            return CallbackAck(handled=False, message="Transaction not found")
        return CallbackAck(handled=True, entity="refund", entity_id=refund.id, status=refund.status)

    # ------------------------------------------------------------------
    # MTN
    # ------------------------------------------------------------------

    def handle_mtn_payin(
        self, payload: MtnCallbackPayload, reference_id: Optional[str] = None
    ) -> CallbackAck:
        """`reference_id` is the X-Reference-Id the collection was requested with."""

        def handle() -> CallbackAck:
            payment = self._find_payment(
                reference_id,
                payload.reference_id,
                payload.financial_transaction_id,
                payload.external_id,
            )
            if payment is None:
                self.logger.warning(
                    "MTN callback for unknown payment (reference=%s, externalId=%s)",
                    reference_id,
                    payload.external_id,
                )
                return CallbackAck(handled=False, message="Payment not found")
            metadata: Dict[str, Any] = {
                "provider_status": payload.status,
                "provider_response": payload.model_dump(by_alias=True, exclude_none=True),
                "financialTransactionId": payload.financial_transaction_id,
            }
            if payload.reason:
                metadata["error_message"] = str(payload.reason)
            return self._apply_payment_status(
                payment, PaymentProvider.MTN, payload.status, metadata, "mtn-callback"
            )

        return self._guarded("MTN payin", handle)

    def handle_mtn_payout(
        self, payload: MtnCallbackPayload, reference_id: Optional[str] = None
    ) -> CallbackAck:
        def handle() -> CallbackAck:
            transaction_id = reference_id or payload.reference_id or payload.external_id
            payout = None
            if transaction_id:
                payout = self.payout_repository.get_by_transaction_id(transaction_id)
            raw = payload.model_dump(by_alias=True, exclude_none=True)
            if payout is None:
                return self._apply_refund_status(
                    PaymentProvider.MTN, transaction_id, payload.status, raw
                )
            mapped = map_payout_status(PaymentProvider.MTN, payload.status, has_transaction_id=True)
            self.payout_reconciliation.apply_payout_status(
                payout,
                mapped.value,
                source=NotificationSource.CALLBACK,
                message=str(payload.reason) if payload.reason else None,
                metadata={
                    "callbackReceivedAt": utcnow().isoformat(),
                    "callbackStatus": payload.status,
                    "financialTransactionId": payload.financial_transaction_id,
                    "providerResponse": raw,
                },
            )
            return CallbackAck(
                handled=True, entity="payout", entity_id=payout.id, status=payout.status
            )

        return self._guarded("MTN payout", handle)

    # ------------------------------------------------------------------
    # Orange Money
    # ------------------------------------------------------------------

    def handle_orange(self, payload: OrangeCallbackPayload) -> CallbackAck:
        def handle() -> CallbackAck:
            data = payload.resolved()
            payment = self._find_payment(data.pay_token, data.txnid)
            if payment is None:
                self.logger.warning("Orange callback for unknown payToken %s", data.pay_token)
                return CallbackAck(handled=False, message="Payment not found")
            metadata: Dict[str, Any] = {
                "provider_status": data.status,
                "provider_response": data.model_dump(by_alias=True, exclude_none=True),
                "orangeTxnId": data.txnid,
            }
            mapped = map_payment_status(PaymentProvider.ORANGE, data.status)
            if data.message and mapped == PaymentStatus.FAILED:
                metadata["error_message"] = data.message
            return self._apply_payment_status(
                payment, PaymentProvider.ORANGE, data.status, metadata, "orange-callback"
            )

        return self._guarded("Orange", handle)

    # ------------------------------------------------------------------
    # pawaPay
    # ------------------------------------------------------------------

    def handle_pawapay(self, payload: PawapayCallbackPayload) -> CallbackAck:
        def handle() -> CallbackAck:
            raw = payload.model_dump(by_alias=True, exclude_none=True)
            if payload.deposit_id:
                return self._pawapay_deposit(payload, raw)
            if payload.payout_id:
                return self._pawapay_payout(payload, raw)
            if payload.refund_id:
                return self._apply_refund_status(
                    PaymentProvider.PAWAPAY, payload.refund_id, payload.status, raw
                )
            return CallbackAck(
                handled=False, message="No depositId, payoutId or refundId in callback"
            )

        return self._guarded("pawaPay", handle)

    def _pawapay_deposit(self, payload: PawapayCallbackPayload, raw: Dict[str, Any]) -> CallbackAck:
        payment = self._find_payment(payload.deposit_id)
        if payment is None:
            self.logger.warning("pawaPay callback for unknown deposit %s", payload.deposit_id)
            return CallbackAck(handled=False, message="Payment not found")
        metadata: Dict[str, Any] = {"provider_status": payload.status, "provider_response": raw}
        if payload.failure_reason is not None:
            metadata["error_message"] = parse_failure_reason(payload.failure_reason)
        return self._apply_payment_status(
            payment, PaymentProvider.PAWAPAY, payload.status, metadata, "pawapay-callback"
        )

    def _pawapay_payout(self, payload: PawapayCallbackPayload, raw: Dict[str, Any]) -> CallbackAck:
        payout = self.payout_repository.get_by_transaction_id(payload.payout_id)
        if payout is None:
            return self._apply_refund_status(
                PaymentProvider.PAWAPAY, payload.payout_id, payload.status, raw
            )
        message = (
            parse_failure_reason(payload.failure_reason)
            if payload.failure_reason is not None
            else None
        )
        mapped = map_payout_status(PaymentProvider.PAWAPAY, payload.status, has_transaction_id=True)
        self.payout_reconciliation.apply_payout_status(
            payout,
            mapped.value,
            source=NotificationSource.CALLBACK,
            message=message,
            metadata={
                "lastCallback": utcnow().isoformat(),
                "callbackData": raw,
                "failureReason": payload.failure_reason,
            },
        )
        return CallbackAck(handled=True, entity="payout", entity_id=payout.id, status=payout.status)

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def handle_refund(self, payload: RefundCallbackPayload) -> CallbackAck:
        def handle() -> CallbackAck:
            try:
                provider = PaymentProvider.parse(payload.provider or PaymentProvider.MTN.value)
            except ValueError:
                provider = PaymentProvider.MTN
            return self._apply_refund_status(
                provider,
                payload.reference,
                payload.status,
                payload.model_dump(by_alias=True, exclude_none=True),
            )

        return self._guarded("Refund", handle)
