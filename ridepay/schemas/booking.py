"""Booking request and response schemas."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ConfigDict, Field

from ._strict_base import StrictModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    # Seat bounds are business rules checked by BookingService (400, not 422).
    ride_id: str = Field(min_length=1)
    seats: int
    pickup_point_id: Optional[str] = None


class BookingUpdate(StrictRequestModel):
    seats: int


class SeatReductionRequest(StrictRequestModel):
    new_seats: int


class VerifyCodeRequest(StrictRequestModel):
    code: str = Field(min_length=1, max_length=12)


class BookingResponse(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: str
    ride_id: str
    user_id: str
    seats: int
    status: str
    payment_status: str
    pickup_point_id: Optional[str] = None
    pickup_point_name: Optional[str] = None
    pickup_time: Optional[datetime] = None
    code_verified: bool = False
    created_at: Optional[datetime] = None


class CancellationResponse(StrictModel):
    success: bool = True
    refund_initiated: bool
    refund_amount: float = 0.0
    refund_record_id: Optional[str] = None
    cancellation_debug_info: Optional[Dict[str, Any]] = None


class SeatReductionResponse(StrictModel):
    success: bool = True
    refund_amount: float
    refund_id: Optional[str] = None
    refund_initiated: bool
    new_seats: int


class AdditionalAmountResponse(StrictModel):
    booking_id: str
    seats: int
    amount: float


class VerificationCodeResponse(StrictModel):
    booking_id: str
    code: Optional[str] = None
    expiry: Optional[datetime] = None
    verified: bool = False
    has_code: bool = False


class PayoutResultResponse(StrictModel):
    success: bool = True
    payout_initiated: bool
    payout_id: Optional[str] = None
    driver_earnings: float = 0.0
    payment_count: int = 0
    already_paid_out: bool = False
    message: str = ""
