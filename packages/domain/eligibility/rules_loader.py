"""
Merchant rules loader with TTL-guarded caching

Resolution order for a merchant:
1. Fresh cached rules → returned as-is
2. Rules store record → cached for the merchant TTL (15 min)
3. No record → country defaults, cached for the default TTL (5 min)
4. Store error → conservative fallback rules, not cached

Refreshes are exclusive per merchant: concurrent baskets for the same
merchant wait on one store read instead of stampeding it.
"""
import asyncio
import time
from typing import Dict, Optional, Tuple

import structlog

from packages.common.schemas.rules import MerchantRules
from packages.domain.eligibility.default_rules import (
    default_country_rules,
    default_merchant_rules,
    fallback_merchant_rules,
)
from packages.domain.eligibility.interfaces import RulesStore

logger = structlog.get_logger()


class MerchantRulesLoader:

    def __init__(
        self,
        store: Optional[RulesStore],
        *,
        ttl_seconds: float = 15 * 60,
        default_ttl_seconds: float = 5 * 60,
        clock=time.monotonic,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[MerchantRules, float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _fresh(self, merchant_id: str) -> Optional[MerchantRules]:
        entry = self._entries.get(merchant_id)
        if entry is None:
            return None
        rules, expires_at = entry
        if expires_at <= self._clock():
            return None
        return rules

    async def get(self, merchant_id: str, country_code: str = "FR", merchant_name: str = "") -> MerchantRules:
        """Rules for a merchant, from cache when fresh"""
        rules = self._fresh(merchant_id)
        if rules is not None:
            return rules
        return await self.refresh(merchant_id, country_code, merchant_name)

    async def refresh(
        self,
        merchant_id: str,
        country_code: str = "FR",
        merchant_name: str = "",
        force: bool = False,
    ) -> MerchantRules:
        """
        Reload a merchant's rules under the merchant's lock.

        Without force, a caller that waited on the lock reuses whatever the
        previous holder loaded.
        """
        lock = self._locks.setdefault(merchant_id, asyncio.Lock())
        async with lock:
            if not force:
                rules = self._fresh(merchant_id)
                if rules is not None:
                    return rules

            rules, ttl = await self._load(merchant_id, country_code, merchant_name)
            if ttl is not None:
                self._entries[merchant_id] = (rules, self._clock() + ttl)
            else:
                self._entries.pop(merchant_id, None)

            logger.info("merchant_rules_loaded",
                        merchant_id=merchant_id,
                        status=rules.status.value,
                        rule_count=len(rules.category_rules))
            return rules

    async def _load(
        self,
        merchant_id: str,
        country_code: str,
        merchant_name: str,
    ) -> Tuple[MerchantRules, Optional[float]]:
        if self.store is None:
            country = default_country_rules(country_code)
            return default_merchant_rules(merchant_id, country, merchant_name), self.default_ttl_seconds

        try:
            rules = await self.store.get_merchant_rules(merchant_id)
            if rules is not None:
                return rules, self.ttl_seconds

            country = await self.store.get_country_rules(country_code.upper())
            if country is None:
                country = default_country_rules(country_code)
            return default_merchant_rules(merchant_id, country, merchant_name), self.default_ttl_seconds

        except Exception as e:
            logger.error("merchant_rules_load_failed",
                         merchant_id=merchant_id,
                         error=str(e))
            return fallback_merchant_rules(merchant_id), None

    def invalidate(self, merchant_id: str) -> None:
        self._entries.pop(merchant_id, None)

    async def update(self, rules: MerchantRules) -> MerchantRules:
        """Persist new rules for a merchant and drop the cached copy"""
        if self.store is None:
            raise RuntimeError("No rules store configured")
        await self.store.save_merchant_rules(rules)
        self.invalidate(rules.merchant_id)
        logger.info("merchant_rules_updated", merchant_id=rules.merchant_id)
        return rules
