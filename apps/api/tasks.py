"""Task queue wrappers - API sends task names, never imports worker code."""
from typing import Any, Dict

import structlog
from celery import Celery

from packages.common.config import get_settings
from packages.common.schemas.basket import BasketFilteringResponse, BasketRequest

logger = structlog.get_logger()
settings = get_settings()

celery_app = Celery('basket_filter')
celery_app.conf.broker_url = settings.celery_broker_url
celery_app.conf.result_backend = settings.celery_result_backend

RECORD_TRANSACTION_TASK = 'services.worker.tasks.record_transaction.record_transaction_task'


def build_audit_summary(request: BasketRequest, response: BasketFilteringResponse) -> Dict[str, Any]:
    """JSON-safe audit payload for one filtered basket"""
    return {
        "basket_id": response.basket_id,
        "transaction_id": response.transaction_id,
        "merchant_id": request.merchant_data.merchant_id,
        "country_code": request.transaction_data.country_code,
        "currency_code": response.currency_code,
        "total_amount": str(response.total_amount),
        "eligible_amount": str(response.eligible_amount),
        "ineligible_amount": str(response.ineligible_amount),
        "is_fully_eligible": response.is_fully_eligible,
        "ineligibility_reason": response.ineligibility_reason,
        "processed_at": response.processed_at.isoformat(),
        "items": [
            {
                "sku": ci.item.sku,
                "is_eligible": ci.is_eligible,
                "reason": ci.reason,
                "category": ci.category,
                "source": ci.provenance.source.value,
                "confidence": ci.provenance.confidence,
            }
            for ci in response.categorized_items
        ],
    }


def queue_transaction_audit(summary: Dict[str, Any]) -> str:
    """Queue a basket audit record for persistence."""
    task = celery_app.send_task(RECORD_TRANSACTION_TASK, args=[summary])
    return task.id


class CeleryAuditSink:
    """AuditSink that hands audit records to the worker. Never raises."""

    def record_transaction(self, request: BasketRequest, response: BasketFilteringResponse) -> None:
        try:
            task_id = queue_transaction_audit(build_audit_summary(request, response))
            logger.debug("audit_queued", basket_id=response.basket_id, task_id=task_id)
        except Exception as e:
            logger.error("audit_queue_failed", basket_id=response.basket_id, error=str(e))
