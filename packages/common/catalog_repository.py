"""
Catalog Repository - durable SKU catalog in PostgreSQL

The catalog_items table holds every product the service has learned about:
- Created the first time the AI classifies a SKU (or by bulk upload)
- Updated whenever a fresh AI verdict is produced for the SKU
- Only removed by an explicit catalog clear

Cache Strategy:
1. First time seeing SKU → rules or AI decide → verdict stored here
2. Next time (any merchant) → TieredCache / catalog hit → free & instant
3. Catalog rows with an AI verdict are cached longest (24h L1 / 48h L2)
"""
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy import text

from packages.common.database import sessionmanager
from packages.common.schemas.catalog import AIVerdict, CatalogEntry

logger = structlog.get_logger()

_COLUMNS = """
    sku,
    name,
    description,
    original_category,
    normalized_category,
    brand,
    unit_price,
    contains_alcohol,
    ai_classification,
    tags,
    created_at,
    updated_at
"""


def _row_to_entry(row) -> CatalogEntry:
    data: Dict[str, Any] = dict(row._mapping)
    verdict = data.pop("ai_classification", None)
    if isinstance(verdict, str):
        verdict = json.loads(verdict)
    data["tags"] = list(data.get("tags") or [])
    return CatalogEntry(
        **data,
        ai_classification=AIVerdict.model_validate(verdict) if verdict else None,
    )


class SqlCatalogStore:
    """
    CatalogStore backed by the catalog_items table.

    Each call opens its own session so background write-backs never share a
    session with the request that triggered them.
    """

    def __init__(self, session_factory: Optional[Callable] = None):
        self._session = session_factory or sessionmanager.session

    async def get_by_sku(self, sku: str) -> Optional[CatalogEntry]:
        """
        Look up a catalog entry.

        Args:
            sku: Product SKU

        Returns:
            CatalogEntry or None if not found
        """
        query = text(f"""
            SELECT {_COLUMNS}
            FROM catalog_items
            WHERE sku = :sku
        """)

        async with self._session() as db:
            result = await db.execute(query, {"sku": sku})
            row = result.fetchone()

        if row is None:
            logger.debug("catalog_miss", sku=sku)
            return None

        logger.debug("catalog_hit", sku=sku)
        return _row_to_entry(row)

    async def upsert(self, entry: CatalogEntry) -> None:
        """Insert or refresh an entry; created_at survives updates"""
        query = text("""
            INSERT INTO catalog_items (
                sku,
                name,
                description,
                original_category,
                normalized_category,
                brand,
                unit_price,
                contains_alcohol,
                ai_classification,
                tags,
                created_at,
                updated_at
            ) VALUES (
                :sku,
                :name,
                :description,
                :original_category,
                :normalized_category,
                :brand,
                :unit_price,
                :contains_alcohol,
                CAST(:ai_classification AS JSONB),
                :tags,
                :created_at,
                :updated_at
            )
            ON CONFLICT (sku) DO UPDATE SET
                name = EXCLUDED.name,
                description = EXCLUDED.description,
                original_category = EXCLUDED.original_category,
                normalized_category = EXCLUDED.normalized_category,
                unit_price = EXCLUDED.unit_price,
                contains_alcohol = EXCLUDED.contains_alcohol,
                ai_classification = EXCLUDED.ai_classification,
                updated_at = EXCLUDED.updated_at
        """)

        now = datetime.now(timezone.utc)

        async with self._session() as db:
            await db.execute(query, {
                "sku": entry.sku,
                "name": entry.name,
                "description": entry.description,
                "original_category": entry.original_category,
                "normalized_category": entry.normalized_category,
                "brand": entry.brand,
                "unit_price": entry.unit_price,
                "contains_alcohol": entry.contains_alcohol,
                "ai_classification": entry.ai_classification.model_dump_json() if entry.ai_classification else None,
                "tags": entry.tags,
                "created_at": entry.created_at,
                "updated_at": now,
            })

        logger.info("catalog_upserted", sku=entry.sku, category=entry.normalized_category)

    async def search(self, term: str, limit: int = 50) -> List[CatalogEntry]:
        query = text(f"""
            SELECT {_COLUMNS}
            FROM catalog_items
            WHERE name ILIKE :pattern
               OR description ILIKE :pattern
               OR sku = :term
            ORDER BY name
            LIMIT :limit
        """)

        async with self._session() as db:
            result = await db.execute(query, {"pattern": f"%{term}%", "term": term, "limit": limit})
            rows = result.fetchall()

        return [_row_to_entry(row) for row in rows]

    async def count(self) -> int:
        async with self._session() as db:
            result = await db.execute(text("SELECT COUNT(*) FROM catalog_items"))
            return int(result.scalar_one())

    async def delete_all(self) -> int:
        async with self._session() as db:
            result = await db.execute(text("DELETE FROM catalog_items"))
            deleted = result.rowcount or 0

        logger.warning("catalog_deleted", rows=deleted)
        return deleted
