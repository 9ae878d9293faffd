# ridepay/routes/v1/payments.py
"""
Payment routes - API v1

Endpoints:
    POST / - Initiate a mobile-money collection for a booking
    GET /{payment_id} - Payment with booking, ride, driver and receipt
    POST /{payment_id}/check-status - Re-query the provider for this payment
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, status

from ...api.dependencies import (
    get_current_user_id,
    get_payment_creation_service,
    get_payment_reconciliation_service,
)
from ...core.exceptions import ForbiddenException
from ...schemas.booking import BookingResponse
from ...schemas.payment import (
    DriverSummary,
    PaymentCreate,
    PaymentDetailsResponse,
    PaymentInitiationResponse,
    PaymentReconciliationResponse,
    PaymentResponse,
    ReceiptResponse,
    RideSummary,
)
from ...services.payment_creation_service import PaymentCreationService
from ...services.payment_reconciliation_service import PaymentReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post("", response_model=PaymentInitiationResponse, status_code=status.HTTP_201_CREATED)
async def initiate_payment(
    payload: PaymentCreate,
    user_id: str = Depends(get_current_user_id),
    creation_service: PaymentCreationService = Depends(get_payment_creation_service),
) -> PaymentInitiationResponse:
    result = await asyncio.to_thread(
        lambda: creation_service.initiate_payment(
            booking_id=payload.booking_id,
            user_id=user_id,
            amount=payload.amount,
            provider=payload.provider,
            phone_number=payload.phone_number,
            currency=payload.currency,
            idempotency_key=payload.idempotency_key,
        )
    )
    return PaymentInitiationResponse(**result)


@router.get("/{payment_id}", response_model=PaymentDetailsResponse)
async def get_payment(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    reconciliation_service: PaymentReconciliationService = Depends(
        get_payment_reconciliation_service
    ),
) -> PaymentDetailsResponse:
    details = await asyncio.to_thread(
        reconciliation_service.orchestration_service.get_payment_with_details, payment_id
    )
    booking, ride = details["booking"], details["ride"]
    allowed = {booking.user_id if booking else None, ride.driver_id if ride else None}
    if user_id not in allowed:
        raise ForbiddenException("You do not have access to this payment")

    def dump(schema, obj):
        return schema.model_validate(obj) if obj is not None else None

    return PaymentDetailsResponse(
        payment=PaymentResponse.model_validate(details["payment"]),
        booking=dump(BookingResponse, booking),
        ride=dump(RideSummary, ride),
        driver=dump(DriverSummary, details["driver"]),
        receipt=dump(ReceiptResponse, details["receipt"]),
    )


@router.post("/{payment_id}/check-status", response_model=PaymentReconciliationResponse)
async def check_payment_status(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    reconciliation_service: PaymentReconciliationService = Depends(
        get_payment_reconciliation_service
    ),
) -> PaymentReconciliationResponse:
    payment_service = reconciliation_service.orchestration_service.payment_service
    payment = await asyncio.to_thread(payment_service.require_payment, payment_id)
    result = await asyncio.to_thread(
        reconciliation_service.reconcile_payment, payment, "status-check"
    )
    return PaymentReconciliationResponse(**result)
