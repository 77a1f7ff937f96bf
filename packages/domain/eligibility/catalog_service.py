"""
Catalog Service - SKU lookups through the tiered cache, backed by the store

Lookup: TieredCache (L1 → L2) → CatalogStore → populate cache.

Write-back of AI verdicts: the cache write is awaited so the next lookup for
the same SKU short-circuits immediately; the durable upsert runs in the
background and only logs on failure.
"""
import asyncio
from typing import List, Optional, Set

import structlog

from packages.common.schemas.basket import BasketItem, cents_to_decimal
from packages.common.schemas.catalog import AIVerdict, CatalogEntry
from packages.common.tiered_cache import TieredCache
from packages.domain.eligibility.categories import normalize_category
from packages.domain.eligibility.interfaces import CatalogStore

logger = structlog.get_logger()

CATALOG_KEY_PREFIX = "catalog:item:"


def catalog_key(sku: str) -> str:
    return f"{CATALOG_KEY_PREFIX}{sku}"


class CatalogService:

    def __init__(
        self,
        cache: TieredCache,
        store: Optional[CatalogStore] = None,
        *,
        catalog_ttl: float = 2 * 3600,
        ai_ttl: float = 24 * 3600,
        remote_catalog_ttl: int = 6 * 3600,
        remote_ai_ttl: int = 48 * 3600,
    ):
        self.cache = cache
        self.store = store
        self.catalog_ttl = catalog_ttl
        self.ai_ttl = ai_ttl
        self.remote_catalog_ttl = remote_catalog_ttl
        self.remote_ai_ttl = remote_ai_ttl
        self._background: Set[asyncio.Task] = set()

    async def _cache_entry(self, entry: CatalogEntry) -> None:
        # Entries carrying an AI verdict are the expensive ones - keep them longer
        if entry.has_ai_classification:
            await self.cache.set(catalog_key(entry.sku), entry, ttl=self.ai_ttl, remote_ttl=self.remote_ai_ttl)
        else:
            await self.cache.set(catalog_key(entry.sku), entry, ttl=self.catalog_ttl, remote_ttl=self.remote_catalog_ttl)

    async def get_item(self, sku: str) -> Optional[CatalogEntry]:
        """
        Look up a catalog entry by SKU.

        Store failures are logged and reported as a miss.
        """
        entry = await self.cache.get(catalog_key(sku), CatalogEntry)
        if entry is not None:
            return entry

        if self.store is None:
            return None

        try:
            entry = await self.store.get_by_sku(sku)
        except Exception as e:
            logger.error("catalog_lookup_failed", sku=sku, error=str(e))
            return None

        if entry is not None:
            await self._cache_entry(entry)
        return entry

    async def record_verdict(self, item: BasketItem, verdict: AIVerdict) -> CatalogEntry:
        """
        Write an AI verdict back for reuse.

        Returns the entry as cached. The store upsert is scheduled, not awaited.
        """
        entry = CatalogEntry(
            sku=item.sku,
            name=item.name,
            description=item.item_data.item_description,
            original_category=item.category,
            normalized_category=verdict.category or normalize_category(item.category),
            unit_price=cents_to_decimal(item.pricing_data.unit_price_amount),
            contains_alcohol=item.item_attributes.contains_alcohol,
            ai_classification=verdict,
        )

        await self._cache_entry(entry)

        if self.store is not None:
            task = asyncio.get_running_loop().create_task(self._persist(entry))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        logger.info("catalog_verdict_recorded",
                    sku=entry.sku,
                    is_eligible=verdict.is_eligible,
                    category=entry.normalized_category)
        return entry

    async def _persist(self, entry: CatalogEntry) -> None:
        try:
            await self.store.upsert(entry)
        except Exception as e:
            logger.error("catalog_write_back_failed", sku=entry.sku, error=str(e))

    async def search(self, term: str, limit: int = 50) -> List[CatalogEntry]:
        if self.store is None or not term.strip():
            return []
        return await self.store.search(term.strip(), limit)

    async def count(self) -> int:
        if self.store is None:
            return 0
        return await self.store.count()

    async def delete_all(self) -> int:
        """Clear the durable catalog and every cached catalog entry"""
        deleted = 0
        if self.store is not None:
            deleted = await self.store.delete_all()
        evicted = await self.cache.remove_prefix(CATALOG_KEY_PREFIX)
        logger.info("catalog_cleared", deleted=deleted, cache_evicted=evicted)
        return deleted

    async def drain(self) -> None:
        """Wait for pending write-backs (shutdown, tests)"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.cache.drain()
