"""
Basket transaction audit trail

One row per filtered basket, written by the Celery worker from the summary
the API queues after each response.
"""
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import uuid4

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class BasketTransactionRepository:

    async def record(self, summary: Dict[str, Any], db: AsyncSession) -> str:
        """
        Insert an audit row.

        Args:
            summary: Output of build_audit_summary()
            db: Database session

        Returns:
            Id of the new row
        """
        row_id = uuid4()

        query = text("""
            INSERT INTO basket_transactions (
                id,
                basket_id,
                transaction_id,
                merchant_id,
                country_code,
                currency_code,
                total_amount,
                eligible_amount,
                ineligible_amount,
                is_fully_eligible,
                ineligibility_reason,
                item_count,
                items,
                processed_at
            ) VALUES (
                :id,
                :basket_id,
                :transaction_id,
                :merchant_id,
                :country_code,
                :currency_code,
                :total_amount,
                :eligible_amount,
                :ineligible_amount,
                :is_fully_eligible,
                :ineligibility_reason,
                :item_count,
                CAST(:items AS JSONB),
                :processed_at
            )
            ON CONFLICT (transaction_id) DO NOTHING
        """)

        await db.execute(query, {
            "id": row_id,
            "basket_id": summary["basket_id"],
            "transaction_id": summary["transaction_id"],
            "merchant_id": summary["merchant_id"],
            "country_code": summary["country_code"],
            "currency_code": summary["currency_code"],
            "total_amount": Decimal(str(summary["total_amount"])),
            "eligible_amount": Decimal(str(summary["eligible_amount"])),
            "ineligible_amount": Decimal(str(summary["ineligible_amount"])),
            "is_fully_eligible": summary["is_fully_eligible"],
            "ineligibility_reason": summary.get("ineligibility_reason"),
            "item_count": len(summary.get("items", [])),
            "items": json.dumps(summary.get("items", [])),
            "processed_at": datetime.fromisoformat(summary["processed_at"]),
        })

        logger.info("basket_transaction_recorded",
                    basket_id=summary["basket_id"],
                    transaction_id=summary["transaction_id"])
        return str(row_id)
