# ridepay/routes/v1/cron.py
"""
Scheduled-job trigger (v1).

`POST /reconcile` runs the reconciliation sweep in-process; Celery beat runs
the same sweep on its own schedule.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_reconciliation_sweep_service
from ...schemas.payment import SweepResponse
from ...services.reconciliation_sweep_service import ReconciliationSweepService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cron"])


@router.post("/reconcile", response_model=SweepResponse)
async def reconcile_pending_transactions(
    sweep_service: ReconciliationSweepService = Depends(get_reconciliation_sweep_service),
) -> SweepResponse:
    summary = await asyncio.to_thread(sweep_service.run)
    return SweepResponse(**summary)
