# ridepay/services/payout_reconciliation_service.py
"""
Payout Reconciliation Service.

Asks the provider where a submitted payout stands, records what it said and
moves the payout accordingly. Webhooks reuse `apply_payout_status` so both
triggers update payouts the same way. MTN payouts that stay pending with a
transient reason are handed to the retry service.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import NotificationSource, PaymentProvider, PayoutStatus
from ..core.exceptions import ProviderException
from ..integrations.payment_providers import get_provider_client, resolve_provider
from ..models.payout import Payout
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService
from .notification_service import NotificationService
from .payment_status_mapper import map_payout_status
from .payout_retry_rules import should_retry
from .payout_retry_service import PayoutRetryService

logger = logging.getLogger(__name__)

_OPEN = (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)


class PayoutReconciliationService(BaseService):
    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        retry_service: Optional[PayoutRetryService] = None,
    ) -> None:
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.retry_service = retry_service or PayoutRetryService(
            db, notification_service=self.notification_service
        )
        self.payout_repository = RepositoryFactory.create_payout_repository(db)

    def apply_payout_status(
        self,
        payout: Payout,
        new_status: str,
        *,
        source: "str | NotificationSource",
        message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record a provider-reported status on the payout.

        Only open payouts change status; a settled payout only gets its
        metadata refreshed. Returns True when the status changed.
        """
        target = PayoutStatus(new_status).value
        changed = payout.status in _OPEN and payout.status != target
        with self.transaction():
            if changed:
                payout.status = target
                if target == PayoutStatus.FAILED.value:
                    payout.error_message = (message or "Payout failed")[:500]
            if metadata:
                self.payout_repository.merge_metadata(payout, **metadata)

        if changed:
            self.logger.info(
                "Payout %s is now %s (source=%s)",
                payout.id,
                target,
                source.value if isinstance(source, NotificationSource) else source,
                extra={"payout_id": payout.id, "booking_id": payout.booking_id},
            )
            self.notification_service.send_payout_notification_if_needed(
                payout, target, source, message
            )
        return changed

    @BaseService.measure_operation("reconcile_payout")
    def reconcile_payout(
        self,
        payout: Payout,
        source: "str | NotificationSource" = NotificationSource.CRON,
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": payout.id,
            "old_status": payout.status,
            "new_status": payout.status,
            "retryable": False,
            "retry_attempted": False,
            "retry_result": None,
            "error": None,
        }
        if not payout.transaction_id:
            result["error"] = "Payout has no transaction id"
            return result

        provider = resolve_provider(payout.provider)
        try:
            response = get_provider_client(provider).check_payout_status(payout.transaction_id)
        except ProviderException as exc:
            self.logger.warning("Status check failed for payout %s: %s", payout.id, exc.message)
            prometheus_metrics.record_reconciliation("payout", "error")
            result["error"] = exc.message
            return result

        mapped = map_payout_status(provider, response.status, has_transaction_id=True)
        retryable = should_retry(response.status, response.reason)
        result["retryable"] = retryable
        self.apply_payout_status(
            payout,
            mapped.value,
            source=source,
            message=response.reason or response.message or None,
            metadata={
                "lastStatusCheck": utcnow().isoformat(),
                "providerStatus": response.status,
                "providerReason": response.reason,
                "retryable": retryable,
            },
        )
        result["new_status"] = payout.status
        prometheus_metrics.record_reconciliation(
            "payout", "changed" if result["new_status"] != result["old_status"] else "unchanged"
        )

        if (
            provider == PaymentProvider.MTN
            and payout.status == PayoutStatus.PROCESSING.value
            and retryable
        ):
            self._maybe_retry(payout, response.status, response.reason, result)
        return result

    def _maybe_retry(
        self,
        payout: Payout,
        provider_status: Optional[str],
        reason: Optional[str],
        result: Dict[str, Any],
    ) -> None:
        if payout.retry_count >= self.retry_service.max_retries:
            self.retry_service.handle_max_retries_reached(payout, reason)
            result["new_status"] = payout.status
            result["retry_result"] = {"success": False, "message": "Maximum retries reached"}
            return

        decision = self.retry_service.check_retry_conditions(payout, provider_status, reason)
        if not decision.should_retry:
            result["retry_result"] = decision.to_dict()
            return
        result["retry_attempted"] = True
        result["retry_result"] = self.retry_service.execute_retry(payout, reason)
