"""Data access for driver payouts."""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ridepay.models.payout import Payout

from .base_repository import BaseRepository


class PayoutRepository(BaseRepository[Payout]):
    def __init__(self, db: Session):
        super().__init__(db, Payout)

    def get_by_booking_id(self, booking_id: str) -> Optional[Payout]:
        return self.find_one_by(booking_id=booking_id)

    def get_by_transaction_id(self, transaction_id: str) -> Optional[Payout]:
        if not transaction_id:
            return None
        return self.find_one_by(transaction_id=transaction_id)

    def find_stale(
        self,
        statuses: Sequence[str],
        older_than: datetime,
        limit: int = 200,
    ) -> List[Payout]:
        query = (
            self.db.query(Payout)
            .filter(
                Payout.status.in_(list(statuses)),
                Payout.created_at < older_than,
                Payout.transaction_id.isnot(None),
            )
            .order_by(Payout.created_at.asc())
            .limit(limit)
        )
        return self._execute_query(query)
