"""Refund model: a reversal tied to a booking and (usually) a payment."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Index, JSON, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ridepay.core.enums import RefundStatus, RefundType
from ridepay.database import Base


class Refund(Base):
    __tablename__ = "refunds"
    __table_args__ = (Index("ix_refunds_status_created", "status", "created_at"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id: Mapped[str] = mapped_column(String(26), ForeignKey("bookings.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    payment_id: Mapped[Optional[str]] = mapped_column(String(26), ForeignKey("payments.id"))
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="XAF")
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32))
    refund_type: Mapped[str] = mapped_column(String(16), nullable=False, default=RefundType.FULL.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RefundStatus.PENDING.value)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    reason: Mapped[Optional[str]] = mapped_column(String(255))
    metadata_: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return (
            f"<Refund(id={self.id}, booking_id={self.booking_id}, type={self.refund_type}, "
            f"status={self.status})>"
        )
