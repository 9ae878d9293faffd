"""Re-query providers for payments stuck in pending/processing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import PaymentStatus
from ..core.exceptions import IllegalTransitionException, ProviderException
from ..integrations.payment_providers import get_provider_client, resolve_provider
from ..models.payment import Payment
from ..monitoring.prometheus_metrics import prometheus_metrics
from .base import BaseService
from .payment_orchestration_service import PaymentOrchestrationService
from .payment_status_mapper import map_payment_status

logger = logging.getLogger(__name__)


class PaymentReconciliationService(BaseService):
    def __init__(
        self,
        db: Session,
        orchestration_service: Optional[PaymentOrchestrationService] = None,
    ) -> None:
        super().__init__(db)
        self.orchestration_service = orchestration_service or PaymentOrchestrationService(db)

    @BaseService.measure_operation("reconcile_payment")
    def reconcile_payment(self, payment: Payment, source: str = "cron") -> Dict[str, Any]:
        """
        Check one payment with its provider and feed the answer to the orchestrator.

        A provider answer that maps to the payment's current status writes
        nothing.
        """
        result: Dict[str, Any] = {
            "payment_id": payment.id,
            "old_status": payment.status,
            "new_status": payment.status,
            "changed": False,
            "error": None,
        }
        if not payment.transaction_id:
            result["error"] = "Payment has no transaction id"
            return result

        provider = resolve_provider(payment.provider)
        try:
            response = get_provider_client(provider).check_payment(payment.transaction_id)
        except ProviderException as exc:
            self.logger.warning("Status check failed for payment %s: %s", payment.id, exc.message)
            prometheus_metrics.record_reconciliation("payment", "error")
            result["error"] = exc.message
            return result

        mapped = map_payment_status(provider, response.status)
        if mapped.value == payment.status or mapped == PaymentStatus.PENDING:
            prometheus_metrics.record_reconciliation("payment", "unchanged")
            return result

        metadata: Dict[str, Any] = {
            "provider_status": response.status,
            "provider_response": response.api_response,
        }
        if mapped == PaymentStatus.FAILED:
            metadata["error_message"] = response.message
        try:
            change = self.orchestration_service.apply_provider_status(
                payment.id, mapped.value, metadata, source=source
            )
        except IllegalTransitionException as exc:
            prometheus_metrics.record_reconciliation("payment", "error")
            result["error"] = exc.message
            return result

        result["new_status"] = change.new_status
        result["changed"] = change.changed
        prometheus_metrics.record_reconciliation(
            "payment", "changed" if change.changed else "unchanged"
        )
        return result
