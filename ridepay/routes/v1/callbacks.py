# ridepay/routes/v1/callbacks.py
"""
Provider webhook endpoints (v1).

Mounted under /api/v1/callbacks. Every endpoint answers 200 with an
acknowledgement, including when the payload could not be applied, so the
provider does not keep redelivering it.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from ...api.dependencies import get_callback_service
from ...schemas.callbacks import (
    CallbackAck,
    MtnCallbackPayload,
    OrangeCallbackPayload,
    PawapayCallbackPayload,
    RefundCallbackPayload,
)
from ...services.callback_service import CallbackService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["callbacks"])


@router.post("/mtn/payin", response_model=CallbackAck)
async def mtn_payin_callback(
    payload: MtnCallbackPayload,
    x_reference_id: Optional[str] = Header(default=None),
    callback_service: CallbackService = Depends(get_callback_service),
) -> CallbackAck:
    logger.info("MTN payin callback: externalId=%s status=%s", payload.external_id, payload.status)
    return await asyncio.to_thread(callback_service.handle_mtn_payin, payload, x_reference_id)


@router.post("/mtn/payout", response_model=CallbackAck)
async def mtn_payout_callback(
    payload: MtnCallbackPayload,
    x_reference_id: Optional[str] = Header(default=None),
    callback_service: CallbackService = Depends(get_callback_service),
) -> CallbackAck:
    logger.info("MTN payout callback: externalId=%s status=%s", payload.external_id, payload.status)
    return await asyncio.to_thread(callback_service.handle_mtn_payout, payload, x_reference_id)


@router.post("/orange", response_model=CallbackAck)
async def orange_callback(
    payload: OrangeCallbackPayload,
    callback_service: CallbackService = Depends(get_callback_service),
) -> CallbackAck:
    return await asyncio.to_thread(callback_service.handle_orange, payload)


@router.post("/pawapay", response_model=CallbackAck)
async def pawapay_callback(
    payload: PawapayCallbackPayload,
    callback_service: CallbackService = Depends(get_callback_service),
) -> CallbackAck:
    logger.info(
        "pawaPay callback: depositId=%s payoutId=%s status=%s",
        payload.deposit_id,
        payload.payout_id,
        payload.status,
    )
    return await asyncio.to_thread(callback_service.handle_pawapay, payload)


@router.post("/refund", response_model=CallbackAck)
async def refund_callback(
    payload: RefundCallbackPayload,
    callback_service: CallbackService = Depends(get_callback_service),
) -> CallbackAck:
    return await asyncio.to_thread(callback_service.handle_refund, payload)
