# ridepay/services/reconciliation_sweep_service.py
"""
Reconciliation Sweep.

Scheduled pass over payments and payouts stuck in pending/processing for
longer than `payment_stale_minutes`, then over refunds still processing.
Every record goes through the same services a webhook would use; one bad
record never stops the sweep. A global Redis lock keeps overlapping beat runs
from processing the same records twice.
"""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import RECONCILIATION_SWEEP_LOCK, named_lock_sync
from ..core.config import settings
from ..core.enums import (
    NON_TERMINAL_PAYMENT_STATUSES,
    NotificationSource,
    PaymentProvider,
    PayoutStatus,
    RefundStatus,
)
from ..core.exceptions import DomainException
from ..integrations.payment_providers import get_provider_client, resolve_provider
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService
from .payment_reconciliation_service import PaymentReconciliationService
from .payment_status_mapper import map_refund_status
from .payout_reconciliation_service import PayoutReconciliationService
from .refund_status_service import RefundStatusService

logger = logging.getLogger(__name__)

_OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)


class ReconciliationSweepService(BaseService):
    def __init__(
        self,
        db: Session,
        payment_reconciliation: Optional[PaymentReconciliationService] = None,
        payout_reconciliation: Optional[PayoutReconciliationService] = None,
        refund_status_service: Optional[RefundStatusService] = None,
    ) -> None:
        super().__init__(db)
        self.payment_reconciliation = payment_reconciliation or PaymentReconciliationService(db)
        self.payout_reconciliation = payout_reconciliation or PayoutReconciliationService(db)
        self.refund_status_service = refund_status_service or RefundStatusService(
            db, orchestration_service=self.payment_reconciliation.orchestration_service
        )
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.payout_repository = RepositoryFactory.create_payout_repository(db)
        self.refund_repository = RepositoryFactory.create_refund_repository(db)

    @staticmethod
    def _skip_reason(provider: str) -> Optional[str]:
        """Non-pawaPay records are left untouched while pawaPay is exclusive."""
        if not settings.use_pawapay:
            return None
        try:
            parsed = PaymentProvider.parse(provider)
        except ValueError:
            parsed = None
        if parsed == PaymentProvider.PAWAPAY:
            return None
        return f"Provider {provider} skipped while pawaPay is the exclusive provider"

    @BaseService.measure_operation("reconciliation_sweep")
    def run(self) -> Dict[str, Any]:
        lock_ttl = settings.reconciliation_sweep_minutes * 60
        with named_lock_sync(RECONCILIATION_SWEEP_LOCK, ttl_s=lock_ttl) as acquired:
            if not acquired:
                self.logger.info("Reconciliation sweep already running; skipping this run")
                return {"skipped": True, "reason": "Sweep already running"}

            cutoff = utcnow() - timedelta(minutes=settings.payment_stale_minutes)
            summary = {
                "payments": self._sweep_payments(cutoff),
                "payouts": self._sweep_payouts(cutoff),
                "refunds": self._sweep_refunds(),
            }

        self.logger.info(
            "Reconciliation sweep checked %d payment(s), %d payout(s), %d refund(s)",
            summary["payments"]["checked"],
            summary["payouts"]["checked"],
            summary["refunds"]["checked"],
        )
        return summary

    def _sweep_payments(self, cutoff) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        for payment in self.payment_repository.find_stale(NON_TERMINAL_PAYMENT_STATUSES, cutoff):
            skip = self._skip_reason(payment.provider)
            if skip:
                prometheus_metrics.record_reconciliation("payment", "skipped")
                results.append({"payment_id": payment.id, "skipped": True, "reason": skip})
                continue
            try:
                results.append(self.payment_reconciliation.reconcile_payment(payment, source="cron"))
            except Exception as exc:
                self.db.rollback()
                self.logger.error(
                    "Reconciliation failed for payment %s: %s", payment.id, exc, exc_info=True
                )
                prometheus_metrics.record_reconciliation("payment", "error")
                results.append({"payment_id": payment.id, "changed": False, "error": str(exc)})
        return {"checked": len(results), "results": results}

    def _sweep_payouts(self, cutoff) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        for payout in self.payout_repository.find_stale(_OPEN_PAYOUT_STATUSES, cutoff):
            skip = self._skip_reason(payout.provider)
            if skip:
                prometheus_metrics.record_reconciliation("payout", "skipped")
                results.append({"id": payout.id, "skipped": True, "reason": skip})
                continue
            try:
                results.append(
                    self.payout_reconciliation.reconcile_payout(payout, NotificationSource.CRON)
                )
            except Exception as exc:
                self.db.rollback()
                self.logger.error(
                    "Reconciliation failed for payout %s: %s", payout.id, exc, exc_info=True
                )
                prometheus_metrics.record_reconciliation("payout", "error")
                results.append({"id": payout.id, "error": str(exc)})
        return {"checked": len(results), "results": results}

    def _sweep_refunds(self) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        for refund in self.refund_repository.find_in_flight([RefundStatus.PROCESSING.value]):
            skip = self._skip_reason(refund.provider)
            if skip:
                prometheus_metrics.record_reconciliation("refund", "skipped")
                results.append({"id": refund.id, "skipped": True, "reason": skip})
                continue
            entry: Dict[str, Any] = {"id": refund.id, "old_status": refund.status, "error": None}
            try:
                # Refunds are disbursements, so they are checked as payouts.
                provider = resolve_provider(refund.provider)
                response = get_provider_client(provider).check_payout_status(refund.transaction_id)
                mapped = map_refund_status(provider, response.status)
                if mapped.value != refund.status:
                    self.refund_status_service.update_refund_status(
                        refund.id,
                        mapped.value,
                        {"source": "cron", "provider_status": response.status},
                    )
                entry["new_status"] = refund.status
                prometheus_metrics.record_reconciliation(
                    "refund", "changed" if refund.status != entry["old_status"] else "unchanged"
                )
            except DomainException as exc:
                self.db.rollback()
                self.logger.error("Reconciliation failed for refund %s: %s", refund.id, exc)
                prometheus_metrics.record_reconciliation("refund", "error")
                entry["error"] = str(exc)
            results.append(entry)
        return {"checked": len(results), "results": results}
