# ridepay/services/payout_retry_service.py
"""
Payout Retry Service.

Bounded, cooldown-gated re-submission of stuck driver payouts. The attempt
counter lives in payout metadata (`retryCount`); once it reaches
`payout_max_retries` no further automatic attempt is made and the payout is
closed as failed with a single final notification.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import NotificationSource, PayoutStatus
from ..core.exceptions import ProviderException
from ..integrations.payment_providers import ProviderResponse, get_provider_client
from ..models.payout import Payout
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.time import ensure_utc, parse_iso, utcnow
from .base import BaseService
from .notification_service import NotificationService
from .payout_retry_rules import should_retry

logger = logging.getLogger(__name__)


@dataclass
class RetryDecision:
    should_retry: bool
    reason: str
    minutes_remaining: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def max_retries_message(max_retries: int) -> str:
    return f"Toutes les tentatives ont échoué ({max_retries} tentatives)"


class PayoutRetryService(BaseService):
    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        super().__init__(db)
        self.notification_service = notification_service or NotificationService(db)
        self.payout_repository = RepositoryFactory.create_payout_repository(db)

    @property
    def max_retries(self) -> int:
        return settings.payout_max_retries

    def check_retry_conditions(
        self, payout: Payout, provider_status: Optional[str], reason: Optional[str] = None
    ) -> RetryDecision:
        if not should_retry(provider_status, reason):
            return RetryDecision(False, f"Provider status {provider_status!r} is not retryable")
        if payout.status != PayoutStatus.PROCESSING.value:
            return RetryDecision(False, f"Payout status is {payout.status}")
        if payout.retry_count >= self.max_retries:
            return RetryDecision(False, "Maximum retries reached")

        meta = payout.metadata_ or {}
        last_attempt = parse_iso(meta.get("lastRetryAttempt")) or ensure_utc(payout.created_at)
        if last_attempt is not None:
            elapsed = (utcnow() - last_attempt).total_seconds() / 60
            delay = settings.payout_retry_delay_minutes
            if elapsed < delay:
                return RetryDecision(False, "Retry cooldown active", round(delay - elapsed, 1))
        return RetryDecision(True, "Retry conditions met")

    @BaseService.measure_operation("execute_payout_retry")
    def execute_retry(self, payout: Payout, reason: Optional[str] = None) -> Dict[str, Any]:
        """Re-submit the payout to the provider and record the attempt."""
        attempt = payout.retry_count + 1
        if attempt > self.max_retries:
            prometheus_metrics.record_payout_retry("exhausted")
            return {
                "success": False,
                "message": "Maximum retries reached",
                "retry_count": payout.retry_count,
            }

        retry_reason = f"{payout.reason or 'Driver payout'} (Retry {attempt})"
        if not payout.phone_number:
            response = ProviderResponse.failure("Payout has no phone number")
        else:
            try:
                response = get_provider_client(payout.provider).payout(
                    amount=float(payout.amount), phone_number=payout.phone_number, reason=retry_reason
                )
            except ProviderException as exc:
                response = ProviderResponse.failure(exc.message)

        now = utcnow().isoformat()
        meta = payout.metadata_ or {}
        entry: Dict[str, Any] = {
            "attempt": attempt,
            "timestamp": now,
            "previous_transaction_id": payout.transaction_id,
            "new_transaction_id": response.transaction_id if response.success else None,
            "reason": reason,
        }
        if not response.success:
            entry["error"] = response.message

        with self.transaction():
            if response.success:
                payout.transaction_id = response.transaction_id
                payout.status = PayoutStatus.PROCESSING.value
                payout.error_message = None
            self.payout_repository.merge_metadata(
                payout,
                retryCount=attempt,
                lastRetryAttempt=now,
                retryHistory=[*(meta.get("retryHistory") or []), entry],
            )

        prometheus_metrics.record_payout_retry("success" if response.success else "failed")
        self.logger.info(
            "Payout %s retry %d/%d %s",
            payout.id,
            attempt,
            self.max_retries,
            "submitted" if response.success else f"failed: {response.message}",
            extra={"payout_id": payout.id, "attempt": attempt},
        )
        return {
            "success": response.success,
            "message": response.message,
            "transaction_id": payout.transaction_id,
            "retry_count": attempt,
        }

    def handle_max_retries_reached(self, payout: Payout, reason: Optional[str] = None) -> bool:
        """Close the payout as failed. Returns False when it was already closed."""
        if (payout.metadata_ or {}).get("maxRetriesReached"):
            return False
        message = max_retries_message(self.max_retries)
        with self.transaction():
            payout.status = PayoutStatus.FAILED.value
            payout.error_message = message
            self.payout_repository.merge_metadata(
                payout,
                maxRetriesReached=True,
                maxRetriesReachedAt=utcnow().isoformat(),
                failureReason=reason or message,
            )
        prometheus_metrics.record_payout_retry("exhausted")
        self.logger.warning(
            "Payout %s exhausted %d retries", payout.id, self.max_retries,
            extra={"payout_id": payout.id, "booking_id": payout.booking_id},
        )
        self.notification_service.send_payout_notification_if_needed(
            payout, PayoutStatus.FAILED.value, NotificationSource.CRON, message
        )
        return True
