"""Data access for rides."""

from typing import Optional

from sqlalchemy.orm import Session

from ridepay.models.ride import Ride

from .base_repository import BaseRepository


class RideRepository(BaseRepository[Ride]):
    def __init__(self, db: Session):
        super().__init__(db, Ride)

    def get_price(self, ride_id: str) -> Optional[float]:
        ride = self.get_by_id(ride_id, load_relationships=False)
        if ride is None or ride.price is None:
            return None
        return float(ride.price)
