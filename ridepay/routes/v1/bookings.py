# ridepay/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to the booking, refund, verification and payout
services; domain errors are rendered by the application exception handler.

Endpoints:
    POST / - Create (or grow) a booking
    GET / - Bookings of the acting passenger
    GET /driver - Bookings on rides driven by the acting user
    GET /{booking_id} - Booking details (passenger or driver)
    PATCH /{booking_id} - Change the seat count; paid bookings can only grow
    DELETE /{booking_id} - Cancel, refunding whatever was collected
    POST /{booking_id}/reduce-seats - Shrink a paid booking with a partial refund
    GET /{booking_id}/additional-amount - Amount due for a new seat count
    POST /{booking_id}/verification-code - Generate or refresh the boarding code
    GET /{booking_id}/verification-code - Boarding code status
    POST /{booking_id}/verify-code - Driver verifies the code and gets paid
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import (
    get_booking_service,
    get_current_user_id,
    get_payout_service,
    get_refund_service,
    get_verification_service,
)
from ...core.exceptions import ForbiddenException
from ...schemas.booking import (
    AdditionalAmountResponse,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    CancellationResponse,
    PayoutResultResponse,
    SeatReductionRequest,
    SeatReductionResponse,
    VerificationCodeResponse,
    VerifyCodeRequest,
)
from ...services.booking_service import BookingService
from ...services.payout_service import PayoutService
from ...services.refund_service import RefundService
from ...services.verification_service import VerificationService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await asyncio.to_thread(
        booking_service.create_booking,
        user_id,
        payload.ride_id,
        payload.seats,
        payload.pickup_point_id,
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=List[BookingResponse])
async def list_my_bookings(
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    bookings = await asyncio.to_thread(booking_service.get_user_bookings, user_id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/driver", response_model=List[BookingResponse])
async def list_driver_bookings(
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    bookings = await asyncio.to_thread(booking_service.get_driver_bookings, user_id)
    return [BookingResponse.model_validate(b) for b in bookings]


# ============================================================================
# SECTION 2: Booking resource
# ============================================================================


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await asyncio.to_thread(booking_service.require_booking, booking_id)
    driver_id = booking.ride.driver_id if booking.ride is not None else None
    if user_id not in (booking.user_id, driver_id):
        raise ForbiddenException("You do not have access to this booking")
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await asyncio.to_thread(
        booking_service.update_booking, booking_id, user_id, payload.seats
    )
    return BookingResponse.model_validate(booking)


@router.delete("/{booking_id}", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    result = await asyncio.to_thread(booking_service.cancel_booking, booking_id, user_id)
    return CancellationResponse(**result)


@router.post("/{booking_id}/reduce-seats", response_model=SeatReductionResponse)
async def reduce_seats(
    booking_id: str,
    payload: SeatReductionRequest,
    user_id: str = Depends(get_current_user_id),
    refund_service: RefundService = Depends(get_refund_service),
) -> SeatReductionResponse:
    result = await asyncio.to_thread(
        refund_service.reduce_seats_with_refund, booking_id, user_id, payload.new_seats
    )
    return SeatReductionResponse(**result)


@router.get("/{booking_id}/additional-amount", response_model=AdditionalAmountResponse)
async def get_additional_amount(
    booking_id: str,
    seats: int = Query(...),
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> AdditionalAmountResponse:
    booking = await asyncio.to_thread(booking_service.require_booking, booking_id)
    if booking.user_id != user_id:
        raise ForbiddenException("You can only price your own bookings")
    amount = await asyncio.to_thread(
        booking_service.calculate_additional_payment_amount, booking_id, seats
    )
    return AdditionalAmountResponse(booking_id=booking_id, seats=seats, amount=amount)


# ============================================================================
# SECTION 3: Boarding verification
# ============================================================================


@router.post("/{booking_id}/verification-code", response_model=VerificationCodeResponse)
async def issue_verification_code(
    booking_id: str,
    refresh: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    verification_service: VerificationService = Depends(get_verification_service),
) -> VerificationCodeResponse:
    issue = (
        verification_service.refresh_verification_code_for_owner
        if refresh
        else verification_service.generate_verification_code_for_user
    )
    result = await asyncio.to_thread(issue, booking_id, user_id)
    return VerificationCodeResponse(**result)


@router.get("/{booking_id}/verification-code", response_model=VerificationCodeResponse)
async def get_verification_code(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    verification_service: VerificationService = Depends(get_verification_service),
) -> VerificationCodeResponse:
    result = await asyncio.to_thread(
        verification_service.get_verification_code_for_user, booking_id, user_id
    )
    return VerificationCodeResponse(**result)


@router.post("/{booking_id}/verify-code", response_model=PayoutResultResponse)
async def verify_code(
    booking_id: str,
    payload: VerifyCodeRequest,
    user_id: str = Depends(get_current_user_id),
    payout_service: PayoutService = Depends(get_payout_service),
) -> PayoutResultResponse:
    result = await asyncio.to_thread(
        payout_service.verify_code_and_handle_payout, booking_id, user_id, payload.code
    )
    return PayoutResultResponse(**result)
