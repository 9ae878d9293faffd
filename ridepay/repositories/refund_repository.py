"""Data access for refunds."""

from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ridepay.core.enums import RefundStatus, RefundType
from ridepay.models.refund import Refund

from .base_repository import BaseRepository


class RefundRepository(BaseRepository[Refund]):
    def __init__(self, db: Session):
        super().__init__(db, Refund)

    def get_by_transaction_id(self, transaction_id: str) -> Optional[Refund]:
        if not transaction_id:
            return None
        return self.find_one_by(transaction_id=transaction_id)

    def get_by_booking_id(self, booking_id: str) -> List[Refund]:
        query = (
            self.db.query(Refund)
            .filter(Refund.booking_id == booking_id)
            .order_by(Refund.created_at.desc())
        )
        return self._execute_query(query)

    def find_in_flight(self, statuses: Sequence[str], limit: int = 200) -> List[Refund]:
        """Refunds in `statuses` that already carry a provider transaction id."""
        query = (
            self.db.query(Refund)
            .filter(Refund.status.in_(list(statuses)), Refund.transaction_id.isnot(None))
            .order_by(Refund.created_at.asc())
            .limit(limit)
        )
        return self._execute_query(query)

    def get_issued_partial_refund_total(self, booking_id: str) -> float:
        """Money already sent back to the rider through seat reductions."""
        total = (
            self.db.query(func.coalesce(func.sum(Refund.amount), 0))
            .filter(
                Refund.booking_id == booking_id,
                Refund.refund_type == RefundType.PARTIAL.value,
                Refund.status.in_(
                    [
                        RefundStatus.PENDING.value,
                        RefundStatus.PROCESSING.value,
                        RefundStatus.COMPLETED.value,
                    ]
                ),
            )
            .scalar()
        )
        return round(float(total or 0), 2)
