"""
Booking model.

Links a rider to a ride for N seats. Bookings are never hard-deleted; they
move to cancelled or completed instead. `status` and `payment_status` evolve
together under the orchestration rules.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ridepay.core.enums import BookingPaymentStatus, BookingStatus
from ridepay.database import Base

if TYPE_CHECKING:
    from ridepay.models.ride import Ride
    from ridepay.models.user import User


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("seats >= 1", name="ck_bookings_seats_positive"),
        Index("ix_bookings_ride_user", "ride_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    ride_id: Mapped[str] = mapped_column(String(26), ForeignKey("rides.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    seats: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=BookingStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BookingPaymentStatus.PENDING.value
    )

    verification_code: Mapped[Optional[str]] = mapped_column(String(12))
    code_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    code_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    pickup_point_id: Mapped[Optional[str]] = mapped_column(String(64))
    pickup_point_name: Mapped[Optional[str]] = mapped_column(String(200))
    pickup_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    ride: Mapped["Ride"] = relationship("Ride", lazy="joined")
    user: Mapped["User"] = relationship("User", lazy="select")

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, seats={self.seats}, status={self.status}, "
            f"payment_status={self.payment_status})>"
        )
