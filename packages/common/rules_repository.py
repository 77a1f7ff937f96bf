"""
Rules Repository - merchant and country eligibility rules in PostgreSQL

Rules are stored as JSONB documents (the serialized MerchantRules /
CountryRules models) keyed by merchant id / country code. Missing records
return None; the loader decides what the defaults are.
"""
import json
from typing import Any, Callable, Optional

import structlog
from sqlalchemy import text

from packages.common.database import sessionmanager
from packages.common.schemas.rules import CountryRules, MerchantRules

logger = structlog.get_logger()


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


class SqlRulesStore:
    """RulesStore backed by merchant_rules / country_rules tables"""

    def __init__(self, session_factory: Optional[Callable] = None):
        self._session = session_factory or sessionmanager.session

    async def get_merchant_rules(self, merchant_id: str) -> Optional[MerchantRules]:
        query = text("""
            SELECT rules
            FROM merchant_rules
            WHERE merchant_id = :merchant_id
              AND is_active = TRUE
        """)

        async with self._session() as db:
            result = await db.execute(query, {"merchant_id": merchant_id})
            row = result.fetchone()

        if row is None:
            return None
        return MerchantRules.model_validate(_load_json(row.rules))

    async def get_country_rules(self, country_code: str) -> Optional[CountryRules]:
        query = text("""
            SELECT rules
            FROM country_rules
            WHERE country_code = :country_code
        """)

        async with self._session() as db:
            result = await db.execute(query, {"country_code": country_code})
            row = result.fetchone()

        if row is None:
            return None
        return CountryRules.model_validate(_load_json(row.rules))

    async def save_merchant_rules(self, rules: MerchantRules) -> None:
        query = text("""
            INSERT INTO merchant_rules (
                merchant_id,
                merchant_name,
                country_code,
                rules,
                is_active,
                updated_at
            ) VALUES (
                :merchant_id,
                :merchant_name,
                :country_code,
                CAST(:rules AS JSONB),
                TRUE,
                NOW()
            )
            ON CONFLICT (merchant_id) DO UPDATE SET
                merchant_name = EXCLUDED.merchant_name,
                country_code = EXCLUDED.country_code,
                rules = EXCLUDED.rules,
                is_active = TRUE,
                updated_at = NOW()
        """)

        async with self._session() as db:
            await db.execute(query, {
                "merchant_id": rules.merchant_id,
                "merchant_name": rules.merchant_name,
                "country_code": rules.country_code,
                "rules": rules.model_dump_json(),
            })

        logger.info("merchant_rules_saved", merchant_id=rules.merchant_id)
