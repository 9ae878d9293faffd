"""Data access for web push subscriptions."""

from typing import List

from sqlalchemy.orm import Session

from ridepay.models.notification import PushSubscription

from .base_repository import BaseRepository


class PushSubscriptionRepository(BaseRepository[PushSubscription]):
    def __init__(self, db: Session):
        super().__init__(db, PushSubscription)

    def get_user_subscriptions(self, user_id: str) -> List[PushSubscription]:
        return self.find_by(user_id=user_id)

    def delete_subscription(self, subscription: PushSubscription) -> None:
        self.db.delete(subscription)
        self.db.flush()
