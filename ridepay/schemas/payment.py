"""Payment, payout and reconciliation schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from ._strict_base import StrictModel, StrictRequestModel
from .booking import BookingResponse


class PaymentCreate(StrictRequestModel):
    booking_id: str = Field(min_length=1)
    amount: float
    provider: str
    phone_number: str = Field(min_length=1)
    currency: Optional[str] = None
    idempotency_key: Optional[str] = Field(default=None, max_length=200)


class PaymentInitiationResponse(StrictModel):
    payment_id: str
    status: str
    transaction_id: Optional[str] = None
    message: str = ""


class PaymentResponse(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: str
    booking_id: str
    amount: float
    currency: str
    provider: str
    phone_number: Optional[str] = None
    transaction_id: Optional[str] = None
    status: str
    payment_time: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReceiptResponse(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: str
    payment_id: str
    receipt_number: str
    created_at: Optional[datetime] = None


class RideSummary(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: str
    driver_id: str
    origin: Optional[str] = None
    destination: Optional[str] = None
    departure_time: datetime
    price: Optional[float] = None
    status: str


class DriverSummary(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None


class PaymentDetailsResponse(StrictModel):
    payment: PaymentResponse
    booking: Optional[BookingResponse] = None
    ride: Optional[RideSummary] = None
    driver: Optional[DriverSummary] = None
    receipt: Optional[ReceiptResponse] = None


class PaymentReconciliationResponse(StrictModel):
    payment_id: str
    old_status: str
    new_status: str
    changed: bool
    error: Optional[str] = None


class PayoutReconciliationResponse(StrictModel):
    id: str
    old_status: str
    new_status: str
    retryable: bool = False
    retry_attempted: bool = False
    retry_result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SweepPhase(StrictModel):
    checked: int = 0
    results: List[Dict[str, Any]] = Field(default_factory=list)


class SweepResponse(StrictModel):
    skipped: bool = False
    reason: Optional[str] = None
    payments: Optional[SweepPhase] = None
    payouts: Optional[SweepPhase] = None
    refunds: Optional[SweepPhase] = None
