import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from apps.api import tasks as api_tasks
from apps.api.tasks import CeleryAuditSink, build_audit_summary
from tests.support import build_pipeline, make_item, make_request


@pytest.fixture
def filtered():
    async def run():
        request = make_request(
            [make_item("S1", "Sandwich Club", price_cents=800), make_item("W1", "Red Wine", price_cents=1200)],
            charges=[{"charge_type": "delivery_fee", "charge_amount": 250}],
        )
        return request, await build_pipeline().filter_basket(request)
    return run


@pytest.mark.asyncio
async def test_audit_summary_is_json_safe(filtered):
    request, response = await filtered()

    summary = build_audit_summary(request, response)

    assert json.loads(json.dumps(summary)) == summary
    assert summary["merchant_id"] == "merchant-1"
    assert summary["total_amount"] == "22.50"
    assert summary["eligible_amount"] == "8.00"
    assert summary["ineligible_amount"] == "14.50"
    assert [i["sku"] for i in summary["items"]] == ["S1", "W1"]
    assert summary["items"][1]["source"] == "rules"


@pytest.mark.asyncio
async def test_sink_queues_summary(filtered, monkeypatch):
    request, response = await filtered()
    queue = MagicMock(return_value="task-1")
    monkeypatch.setattr(api_tasks, "queue_transaction_audit", queue)

    CeleryAuditSink().record_transaction(request, response)

    queue.assert_called_once()
    assert queue.call_args.args[0]["transaction_id"] == "txn-1"


@pytest.mark.asyncio
async def test_sink_swallows_broker_errors(filtered, monkeypatch):
    request, response = await filtered()
    monkeypatch.setattr(api_tasks, "queue_transaction_audit", MagicMock(side_effect=ConnectionError("no broker")))

    CeleryAuditSink().record_transaction(request, response)


def test_worker_task_persists_summary(monkeypatch):
    from services.worker.tasks import record_transaction

    record = AsyncMock(return_value="row-1")
    monkeypatch.setattr(record_transaction, "_record", record)
    summary = {"basket_id": "basket-1", "transaction_id": "txn-1"}

    result = record_transaction.record_transaction_task(summary)

    record.assert_awaited_once_with(summary)
    assert result == {"record_id": "row-1", "transaction_id": "txn-1"}
