# ridepay/tasks/reconciliation_tasks.py
"""
Celery tasks for payment, payout and refund reconciliation.
"""

import logging
from typing import Any, Callable, Dict, ParamSpec, Protocol, TypeVar, cast

from celery.result import AsyncResult
from sqlalchemy.orm import Session

from ridepay.services.reconciliation_sweep_service import ReconciliationSweepService
from ridepay.tasks.celery_app import celery_app

P = ParamSpec("P")
R = TypeVar("R", covariant=True)

logger = logging.getLogger(__name__)


class TaskWrapper(Protocol[P, R]):
    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> R:
        ...

    delay: Callable[..., AsyncResult]
    apply_async: Callable[..., AsyncResult]


def typed_task(
    *task_args: Any, **task_kwargs: Any
) -> Callable[[Callable[P, R]], TaskWrapper[P, R]]:
    """Return a typed Celery task decorator for mypy."""
    return cast(
        Callable[[Callable[P, R]], TaskWrapper[P, R]],
        celery_app.task(*task_args, **task_kwargs),
    )


@typed_task(name="ridepay.tasks.reconciliation_tasks.reconcile_pending_transactions")
def reconcile_pending_transactions() -> Dict[str, Any]:
    """
    Run one reconciliation sweep.

    Not retried: the next scheduled run picks up anything this one missed.
    """
    from ridepay.database import SessionLocal

    db: Session = SessionLocal()
    try:
        summary = ReconciliationSweepService(db).run()
        logger.info("Reconciliation sweep finished: skipped=%s", summary.get("skipped", False))
        return summary
    finally:
        db.close()

