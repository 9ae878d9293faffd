# ridepay/services/payment_service.py
"""
Payment Service.

CRUD for payment rows, idempotent creation and the payment state machine.
The transition table below is the only authority on which status changes
are legal; provider status mappers merely pick the status to request.
"""

import logging
from typing import Any, Dict, FrozenSet, Mapping, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import PaymentStatus
from ..core.exceptions import IllegalTransitionException, NotFoundException, RepositoryException
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..repositories.payment_repository import PaymentRepository
from ..utils.time import utcnow
from .base import BaseService

logger = logging.getLogger(__name__)

PAYMENT_STATE_TRANSITIONS: Mapping[str, FrozenSet[str]] = {
    PaymentStatus.PENDING.value: frozenset(
        {PaymentStatus.PROCESSING.value, PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value}
    ),
    PaymentStatus.PROCESSING.value: frozenset(
        {PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value}
    ),
    PaymentStatus.COMPLETED.value: frozenset({PaymentStatus.REFUNDED.value}),
    PaymentStatus.FAILED.value: frozenset(),
    PaymentStatus.CANCELLED.value: frozenset(),
    PaymentStatus.REFUNDED.value: frozenset(),
}

# Metadata keys that map to columns instead of the JSON blob.
_COLUMN_KEYS = ("transaction_id",)

_RETRYABLE = (PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value)
_FINALIZED = (
    PaymentStatus.COMPLETED.value,
    PaymentStatus.REFUNDED.value,
    PaymentStatus.CANCELLED.value,
)


class PaymentService(BaseService):
    """Single-payment persistence and transition enforcement."""

    def __init__(self, db: Session, payment_repository: Optional[PaymentRepository] = None):
        super().__init__(db)
        self.payment_repository = payment_repository or RepositoryFactory.create_payment_repository(db)

    @staticmethod
    def validate_state_transition(current_status: str, new_status: str) -> bool:
        """True when `current -> new` is an edge of the payment state machine."""
        return new_status in PAYMENT_STATE_TRANSITIONS.get(current_status, frozenset())

    @staticmethod
    def can_retry_payment(payment: Payment) -> bool:
        """A rider may start a fresh attempt only after a failed or cancelled one."""
        return payment.status in _RETRYABLE

    @staticmethod
    def is_payment_finalized(payment: Payment) -> bool:
        return payment.status in _FINALIZED

    @BaseService.measure_operation("create_payment")
    def create_payment(
        self,
        *,
        booking_id: str,
        amount: float,
        provider: str,
        phone_number: Optional[str] = None,
        currency: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        transaction_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """
        Insert a pending payment.

        A repeated idempotency key returns the row created by the first call;
        a concurrent insert that loses the unique-key race does the same.
        """
        if idempotency_key:
            existing = self.payment_repository.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                self.logger.info(
                    "Returning existing payment %s for idempotency key", existing.id,
                    extra={"payment_id": existing.id, "booking_id": booking_id},
                )
                return existing

        try:
            with self.transaction():
                payment = self.payment_repository.create(
                    booking_id=booking_id,
                    amount=amount,
                    currency=(currency or settings.default_currency).upper(),
                    provider=provider,
                    phone_number=phone_number,
                    transaction_id=transaction_id,
                    idempotency_key=idempotency_key,
                    status=PaymentStatus.PENDING.value,
                    metadata_=dict(metadata or {}),
                )
        except RepositoryException:
            if not idempotency_key:
                raise
            existing = self.payment_repository.get_by_idempotency_key(idempotency_key)
            if existing is None:
                raise
            self.logger.info("Idempotency race resolved to payment %s", existing.id)
            return existing

        self.logger.info(
            "Created payment %s for booking %s", payment.id, booking_id,
            extra={"payment_id": payment.id, "amount": amount, "provider": provider},
        )
        return payment

    def get_payment_by_id(self, payment_id: str) -> Optional[Payment]:
        return self.payment_repository.get_by_id(payment_id)

    def require_payment(self, payment_id: str) -> Payment:
        payment = self.get_payment_by_id(payment_id)
        if payment is None:
            raise NotFoundException(f"Payment not found: {payment_id}", code="PAYMENT_NOT_FOUND")
        return payment

    def update_payment_status(
        self,
        payment_id: str,
        new_status: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """
        Apply a validated status change inside the caller's transaction.

        Raises NotFoundException or IllegalTransitionException before anything
        is written. Moving to `completed` stamps payment_time.
        """
        payment = self.payment_repository.get_for_update(payment_id)
        if payment is None:
            raise NotFoundException(f"Payment not found: {payment_id}", code="PAYMENT_NOT_FOUND")

        new_status = PaymentStatus(new_status).value
        if not self.validate_state_transition(payment.status, new_status):
            raise IllegalTransitionException(payment.status, new_status)

        metadata = dict(metadata or {})
        previous_status = payment.status
        payment.status = new_status
        if new_status == PaymentStatus.COMPLETED.value:
            payment.payment_time = utcnow()
        for key in _COLUMN_KEYS:
            if metadata.get(key):
                setattr(payment, key, metadata.pop(key))

        history = list((payment.metadata_ or {}).get("statusHistory") or [])
        history.append({"from": previous_status, "to": new_status, "at": utcnow().isoformat()})
        self.payment_repository.merge_metadata(payment, statusHistory=history, **metadata)
        self.payment_repository.flush()
        return payment
