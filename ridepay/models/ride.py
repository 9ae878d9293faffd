"""
Ride model.

A ride is the capacity entity: `seats_available` is decremented by the
seat-reservation primitive and restored on cancellation or seat reduction.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, JSON, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ridepay.core.enums import RideStatus
from ridepay.database import Base


class Ride(Base):
    __tablename__ = "rides"
    __table_args__ = (CheckConstraint("seats_available >= 0", name="ck_rides_seats_non_negative"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    driver_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    origin: Mapped[Optional[str]] = mapped_column(String(200))
    destination: Mapped[Optional[str]] = mapped_column(String(200))
    departure_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False))
    seats_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RideStatus.ACTIVE.value)
    # List of {"id", "name", "time_offset_minutes"}; legacy rows hold a JSON string.
    pickup_points: Mapped[Optional[Any]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_cancelled(self) -> bool:
        return self.status == RideStatus.CANCELLED.value

    def __repr__(self) -> str:
        return f"<Ride(id={self.id}, seats_available={self.seats_available}, status={self.status})>"
