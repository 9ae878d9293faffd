"""Data access for payments."""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ridepay.core.enums import PaymentStatus
from ridepay.models.payment import Payment

from .base_repository import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        if not transaction_id:
            return None
        return self.find_one_by(transaction_id=transaction_id)

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[Payment]:
        if not idempotency_key:
            return None
        return self.find_one_by(idempotency_key=idempotency_key)

    def get_by_booking_id(
        self, booking_id: str, statuses: Optional[Sequence[str]] = None
    ) -> List[Payment]:
        query = self.db.query(Payment).filter(Payment.booking_id == booking_id)
        if statuses:
            query = query.filter(Payment.status.in_(list(statuses)))
        return self._execute_query(query.order_by(Payment.created_at.desc()))

    def get_completed_for_booking(self, booking_id: str) -> List[Payment]:
        return self.get_by_booking_id(booking_id, statuses=[PaymentStatus.COMPLETED.value])

    def find_stale(
        self,
        statuses: Sequence[str],
        older_than: datetime,
        limit: int = 200,
    ) -> List[Payment]:
        """Payments stuck in `statuses` created before `older_than` that have a provider reference."""
        query = (
            self.db.query(Payment)
            .filter(
                Payment.status.in_(list(statuses)),
                Payment.created_at < older_than,
                Payment.transaction_id.isnot(None),
            )
            .order_by(Payment.created_at.asc())
            .limit(limit)
        )
        return self._execute_query(query)

