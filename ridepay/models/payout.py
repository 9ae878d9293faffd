"""
Payout model.

Driver disbursement for a booking, created only after code verification.
At most one payout exists per booking. Retry bookkeeping (retryCount,
retryHistory, lastRetryAttempt) and notification dedupe flags live in
`metadata`.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Index, JSON, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ridepay.core.enums import PayoutStatus
from ridepay.database import Base


class Payout(Base):
    __tablename__ = "payouts"
    __table_args__ = (Index("ix_payouts_status_created", "status", "created_at"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.id"), nullable=False, unique=True
    )
    driver_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    original_amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    transaction_fee: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0
    )
    commission: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="XAF")
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32))
    transaction_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    reason: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PayoutStatus.PENDING.value)
    error_message: Mapped[Optional[str]] = mapped_column(String(500))
    metadata_: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def retry_count(self) -> int:
        return int((self.metadata_ or {}).get("retryCount") or 0)

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, booking_id={self.booking_id}, status={self.status})>"
