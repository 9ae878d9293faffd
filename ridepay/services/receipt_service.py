"""Receipts: one per completed payment, numbered RECEIPT-YYYY-NNNNN."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, RepositoryException
from ..models.payment import PaymentReceipt
from ..repositories.factory import RepositoryFactory
from ..utils.time import utcnow
from .base import BaseService

logger = logging.getLogger(__name__)


class ReceiptService(BaseService):
    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.receipt_repository = RepositoryFactory.create_receipt_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)

    def get_receipt_by_payment_id(self, payment_id: str) -> Optional[PaymentReceipt]:
        return self.receipt_repository.get_by_payment_id(payment_id)

    @BaseService.measure_operation("create_receipt")
    def create_receipt(self, payment_id: str) -> PaymentReceipt:
        """
        Return the receipt for a payment, creating it on first call.

        A concurrent creator that wins the unique constraint on payment_id (or
        receipt_number) makes this call re-read and return that receipt.
        """
        existing = self.receipt_repository.get_by_payment_id(payment_id)
        if existing is not None:
            return existing

        if self.payment_repository.get_by_id(payment_id) is None:
            raise NotFoundException(f"Payment not found: {payment_id}", code="PAYMENT_NOT_FOUND")

        try:
            with self.transaction():
                receipt = self.receipt_repository.create(
                    payment_id=payment_id,
                    receipt_number=self.receipt_repository.next_receipt_number(utcnow().year),
                )
        except RepositoryException:
            existing = self.receipt_repository.get_by_payment_id(payment_id)
            if existing is None:
                raise
            self.logger.info("Receipt for payment %s was created concurrently", payment_id)
            return existing

        self.logger.info(
            "Created receipt %s for payment %s", receipt.receipt_number, payment_id
        )
        return receipt
