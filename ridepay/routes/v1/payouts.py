# ridepay/routes/v1/payouts.py
"""
Payout routes - API v1

Endpoints:
    POST /{payout_id}/check-status - Re-query the provider for a driver payout
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_current_user_id, get_payout_reconciliation_service
from ...core.enums import NotificationSource
from ...core.exceptions import ForbiddenException, NotFoundException
from ...schemas.payment import PayoutReconciliationResponse
from ...services.payout_reconciliation_service import PayoutReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payouts-v1"])


@router.post("/{payout_id}/check-status", response_model=PayoutReconciliationResponse)
async def check_payout_status(
    payout_id: str,
    user_id: str = Depends(get_current_user_id),
    reconciliation_service: PayoutReconciliationService = Depends(
        get_payout_reconciliation_service
    ),
) -> PayoutReconciliationResponse:
    payout = await asyncio.to_thread(reconciliation_service.payout_repository.get_by_id, payout_id)
    if payout is None:
        raise NotFoundException(f"Payout not found: {payout_id}", code="PAYOUT_NOT_FOUND")
    if payout.driver_id != user_id:
        raise ForbiddenException("Only the driver can check this payout")
    result = await asyncio.to_thread(
        reconciliation_service.reconcile_payout, payout, NotificationSource.STATUS_CHECK
    )
    return PayoutReconciliationResponse(**result)
