# ridepay/services/refund_status_service.py
"""
Refund Status Service.

Single place where a refund's status changes after it was submitted, used by
webhooks and the reconciliation sweep alike. When a refund completes:

- partial refund: the booking's payment_status becomes `partial_refund`, but
  only for a booking that is not cancelled and whose payment_status is
  `partial`, `completed` or `partial_refund`. Any other booking is left as is.
- full refund: every payment it covers moves `completed -> refunded` through
  the payment orchestrator.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import (
    BookingPaymentStatus,
    BookingStatus,
    PaymentStatus,
    RefundStatus,
    RefundType,
)
from ..core.exceptions import IllegalTransitionException, NotFoundException
from ..models.refund import Refund
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService
from .payment_orchestration_service import PaymentOrchestrationService

logger = logging.getLogger(__name__)

PARTIAL_REFUND_ELIGIBLE = (
    BookingPaymentStatus.PARTIAL.value,
    BookingPaymentStatus.COMPLETED.value,
    BookingPaymentStatus.PARTIAL_REFUND.value,
)


class RefundStatusService(BaseService):
    def __init__(
        self,
        db: Session,
        orchestration_service: Optional[PaymentOrchestrationService] = None,
    ) -> None:
        super().__init__(db)
        self.orchestration_service = orchestration_service or PaymentOrchestrationService(db)
        self.refund_repository = RepositoryFactory.create_refund_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def update_refund_by_transaction_id(
        self,
        transaction_id: str,
        new_status: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[Refund]:
        refund = self.refund_repository.get_by_transaction_id(transaction_id)
        if refund is None:
            self.logger.info("No refund found for transaction %s", transaction_id)
            return None
        return self._apply(refund, new_status, context or {})

    def update_refund_status(
        self,
        refund_id: str,
        new_status: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[Refund]:
        """
        Move a refund to `new_status` and merge the update context into metadata.

        context keys: source, provider_status, callback_payload,
        update_even_if_same (rewrite metadata when the status is unchanged).
        """
        refund = self.refund_repository.get_by_id(refund_id)
        if refund is None:
            self.logger.warning("Refund %s not found", refund_id)
            return None
        return self._apply(refund, new_status, context or {})

    @BaseService.measure_operation("update_refund_status")
    def _apply(self, refund: Refund, new_status: str, context: Dict[str, Any]) -> Refund:
        target = RefundStatus(new_status).value
        previous = refund.status

        if previous == target and not context.get("update_even_if_same"):
            self.logger.debug("Refund %s already %s", refund.id, target)
            return refund
        if previous == RefundStatus.COMPLETED.value and target != previous:
            raise IllegalTransitionException(previous, target, entity="refund")

        updates: Dict[str, Any] = {
            "lastUpdateSource": context.get("source") or "unknown",
            "providerStatus": context.get("provider_status"),
            "lastUpdatedAt": utcnow().isoformat(),
        }
        if context.get("callback_payload") is not None:
            updates["callbackPayload"] = context["callback_payload"]

        completed_now = target == RefundStatus.COMPLETED.value and previous != target
        with self.transaction():
            refund.status = target
            self.refund_repository.merge_metadata(refund, **updates)
            if completed_now and refund.refund_type == RefundType.PARTIAL.value:
                self._restore_partial_refund_status(refund)
            elif completed_now and refund.refund_type == RefundType.FULL.value:
                self._mark_booking_refunded(refund)

        self.logger.info(
            "Refund %s: %s -> %s (source=%s)",
            refund.id,
            previous,
            target,
            updates["lastUpdateSource"],
        )
        if completed_now and refund.refund_type == RefundType.FULL.value:
            self._refund_payments(refund, updates["lastUpdateSource"])
        return refund

    def _restore_partial_refund_status(self, refund: Refund) -> None:
        booking = self.booking_repository.get_for_update(refund.booking_id)
        if booking is None:
            return
        if (
            booking.status != BookingStatus.CANCELLED.value
            and booking.payment_status in PARTIAL_REFUND_ELIGIBLE
        ):
            booking.payment_status = BookingPaymentStatus.PARTIAL_REFUND.value
            booking.touch()
        else:
            self.logger.info(
                "Booking %s left at %s/%s after partial refund %s",
                booking.id,
                booking.status,
                booking.payment_status,
                refund.id,
            )

    def _mark_booking_refunded(self, refund: Refund) -> None:
        booking = self.booking_repository.get_for_update(refund.booking_id)
        if booking is not None and booking.status == BookingStatus.CANCELLED.value:
            booking.payment_status = BookingPaymentStatus.REFUNDED.value
            booking.touch()

    def _covered_payment_ids(self, refund: Refund) -> List[str]:
        ids = list((refund.metadata_ or {}).get("payment_ids") or [])
        if not ids and refund.payment_id:
            ids = [refund.payment_id]
        return ids

    def _refund_payments(self, refund: Refund, source: str) -> None:
        for payment_id in self._covered_payment_ids(refund):
            try:
                self.orchestration_service.handle_payment_status_change(
                    payment_id,
                    PaymentStatus.REFUNDED.value,
                    {"refund_id": refund.id},
                    source=source,
                )
            except (IllegalTransitionException, NotFoundException) as exc:
                self.logger.warning(
                    "Payment %s not marked refunded for refund %s: %s",
                    payment_id,
                    refund.id,
                    exc.message,
                )
