"""Data access for payment receipts."""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ridepay.core.exceptions import RepositoryException
from ridepay.models.payment import PaymentReceipt

from .base_repository import BaseRepository


class ReceiptRepository(BaseRepository[PaymentReceipt]):
    def __init__(self, db: Session):
        super().__init__(db, PaymentReceipt)

    def get_by_payment_id(self, payment_id: str) -> Optional[PaymentReceipt]:
        return self.find_one_by(payment_id=payment_id)

    def next_receipt_number(self, year: int) -> str:
        """Next `RECEIPT-YYYY-NNNNN` number for the year."""
        prefix = f"RECEIPT-{year}-"
        try:
            last = (
                self.db.query(func.max(PaymentReceipt.receipt_number))
                .filter(PaymentReceipt.receipt_number.like(f"{prefix}%"))
                .scalar()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading last receipt number: {str(e)}")
            raise RepositoryException(f"Failed to generate receipt number: {str(e)}")
        sequence = int(last[len(prefix):]) + 1 if last else 1
        return f"{prefix}{sequence:05d}"
