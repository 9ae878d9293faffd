"""Data access for user profiles."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ridepay.models.user import User

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_phone(self, user_id: str) -> Optional[str]:
        user = self.get_by_id(user_id, load_relationships=False)
        return user.phone if user else None

    def get_display_name(self, user_id: str, default: str = "Passager") -> str:
        user = self.get_by_id(user_id, load_relationships=False)
        if user and user.full_name:
            return user.full_name
        return default
