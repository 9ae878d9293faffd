# ridepay/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for RidePay.

The reconciliation sweep is the only periodic job; its cadence comes from
`reconciliation_sweep_minutes`.
"""

from datetime import timedelta
from typing import Any

from ridepay.core.config import settings

RECONCILE_TASK_NAME = "ridepay.tasks.reconciliation_tasks.reconcile_pending_transactions"


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of task name to Celery beat configuration dict
    """
    interval = timedelta(minutes=settings.reconciliation_sweep_minutes)
    schedule: dict[str, dict[str, Any]] = {
        "reconcile-pending-transactions": {
            "task": RECONCILE_TASK_NAME,
            "schedule": interval,
            "options": {
                "queue": "payments" if environment == "production" else "celery",
                # A run that waits longer than one interval is superseded by the next.
                "expires": interval.total_seconds(),
            },
        },
    }
    return schedule
