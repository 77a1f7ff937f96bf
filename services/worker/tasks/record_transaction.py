"""
Basket audit persistence task

Flow:
1. API filters a basket and queues a JSON-safe summary (apps/api/tasks.py)
2. Worker picks it up from the "audit" queue
3. Summary is written to basket_transactions

Duplicate deliveries (acks_late + retry) are absorbed by the unique
transaction_id index, so the task is safe to run more than once.
"""
from typing import Any, Dict

import structlog
from celery import Task

from packages.common.audit_repository import BasketTransactionRepository
from packages.common.database import sessionmanager
from services.worker.celery_app import app, run_async

logger = structlog.get_logger()

repository = BasketTransactionRepository()


class AuditTask(Task):
    """Base task for audit writes with retry logic"""
    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 5}
    retry_backoff = True


async def _record(summary: Dict[str, Any]) -> str:
    async with sessionmanager.session() as db:
        return await repository.record(summary, db)


@app.task(base=AuditTask, bind=True,
          name="services.worker.tasks.record_transaction.record_transaction_task")
def record_transaction_task(self, summary: Dict[str, Any]) -> Dict[str, Any]:
    """
    Persist one basket audit summary.

    Args:
        summary: Output of apps.api.tasks.build_audit_summary

    Returns:
        Record id and transaction id
    """
    logger.info("recording_basket_transaction",
                basket_id=summary.get("basket_id"),
                transaction_id=summary.get("transaction_id"),
                attempt=self.request.retries)

    record_id = run_async(_record(summary))

    logger.info("basket_transaction_recorded",
                transaction_id=summary.get("transaction_id"),
                record_id=record_id)

    return {"record_id": record_id, "transaction_id": summary.get("transaction_id")}
