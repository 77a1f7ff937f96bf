"""
Basket Filtering Service - Orchestrates eligibility for a whole basket

Flow:
1. Load merchant rules (TTL-cached, country defaults when unknown)
2. Classify every item concurrently through the fallback chain
   (catalog → rules → AI + overrides)
3. Aggregate totals, apply the daily cap, derive the reason
4. Hand the transaction to the audit sink (fire-and-forget)

Example:
- Basket: "Formule Déjeuner" (SKU unseen) + "Salade César" (cached verdict)
- Formule → French "Menu with Alcohol" rule → eligible (rules)
- Salade → cached AI verdict → eligible (cache)
- Result: fully eligible, eligible amount = basket total
"""
import time
from typing import Optional

import structlog

from packages.common.metrics import BASKET_PROCESSING_SECONDS
from packages.common.schemas.basket import BasketFilteringResponse, BasketRequest
from packages.common.tiered_cache import CacheStatistics, TieredCache
from packages.domain.eligibility.eligibility_classifier import EligibilityClassifier
from packages.domain.eligibility.interfaces import AuditSink
from packages.domain.eligibility.response_aggregator import ResponseAggregator
from packages.domain.eligibility.rules_loader import MerchantRulesLoader
from packages.domain.eligibility.schemas import ClassificationContext

logger = structlog.get_logger()


class BasketFilteringService:
    """
    Entry point for basket eligibility filtering.
    """

    def __init__(
        self,
        rules_loader: MerchantRulesLoader,
        classifier: EligibilityClassifier,
        aggregator: ResponseAggregator,
        cache: TieredCache,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.rules_loader = rules_loader
        self.classifier = classifier
        self.aggregator = aggregator
        self.cache = cache
        self.audit_sink = audit_sink

    @property
    def catalog(self):
        return self.classifier.catalog

    @property
    def ai_classifier(self):
        return self.classifier.ai_classifier

    async def filter_basket(self, request: BasketRequest) -> BasketFilteringResponse:
        """
        Classify every item in a basket and compute eligible totals.

        Args:
            request: Validated basket request

        Returns:
            BasketFilteringResponse - one CategorizedItem per input item, in order
        """
        started = time.perf_counter()
        tx = request.transaction_data
        merchant = request.merchant_data

        logger.info("basket_filtering_started",
                    basket_id=tx.basket_id,
                    merchant_id=merchant.merchant_id,
                    item_count=len(request.basket_items))

        rules = await self.rules_loader.get(
            merchant.merchant_id,
            country_code=tx.country_code,
            merchant_name=merchant.merchant_name,
        )

        if not rules.is_time_allowed(tx.timestamp):
            logger.warning("transaction_outside_allowed_hours",
                           basket_id=tx.basket_id,
                           merchant_id=merchant.merchant_id,
                           timestamp=tx.timestamp.isoformat())

        context = ClassificationContext.from_request(request, rules)
        categorized = await self.classifier.classify_items(request.basket_items, context)
        response = self.aggregator.aggregate(request, categorized, rules)

        elapsed = time.perf_counter() - started
        BASKET_PROCESSING_SECONDS.observe(elapsed)

        logger.info("basket_filtering_complete",
                    basket_id=tx.basket_id,
                    eligible_amount=str(response.eligible_amount),
                    ineligible_amount=str(response.ineligible_amount),
                    is_fully_eligible=response.is_fully_eligible,
                    duration_ms=round(elapsed * 1000, 2))

        if self.audit_sink is not None:
            try:
                self.audit_sink.record_transaction(request, response)
            except Exception as e:
                logger.error("audit_record_failed", basket_id=tx.basket_id, error=str(e))

        return response

    def get_cache_statistics(self) -> CacheStatistics:
        return self.cache.stats()

    async def clear_cache(self) -> None:
        await self.cache.clear()

    async def shutdown(self) -> None:
        """Flush pending write-backs and close the remote cache tier"""
        await self.catalog.drain()
        await self.cache.close()
