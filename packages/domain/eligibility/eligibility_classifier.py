"""
Eligibility Classifier - per-item fallback chain

Stages, in strict order; the first one that resolves the item wins:
1. Catalog entry with a cached AI verdict → that verdict (source "cache")
2. Catalog entry without a verdict → ineligible iff alcoholic / non_food
   (source "catalog", confidence 0.9)
3. Rule engine, definitive results only (source "rules")
4. AI classifier + confidence floor + business overrides (source "ai"),
   then written back to the catalog

Any unexpected exception yields an Errored resolution for that item only;
the rest of the basket is unaffected.
"""
import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Sequence

import structlog

from packages.common.metrics import ITEMS_CLASSIFIED
from packages.common.schemas.basket import BasketItem, CategorizedItem, Provenance, ResolutionSource
from packages.common.schemas.catalog import AIVerdict, VerdictSource
from packages.domain.eligibility.ai_classifier import AIClassifierAdapter
from packages.domain.eligibility.business_override import BusinessRuleOverride
from packages.domain.eligibility.catalog_service import CatalogService
from packages.domain.eligibility.categories import (
    INELIGIBLE_CATALOG_CATEGORIES,
    normalize_category,
)
from packages.domain.eligibility.rule_engine import RuleEngine
from packages.domain.eligibility.schemas import (
    AIResolved,
    CatalogResolved,
    ClassificationContext,
    Errored,
    Resolution,
    RulesResolved,
)

logger = structlog.get_logger()

CATALOG_MATCH_CONFIDENCE = 0.9

Stage = Callable[[BasketItem, ClassificationContext], Awaitable[Optional[Resolution]]]


class EligibilityClassifier:
    """
    Drives each item through catalog → rules → AI.
    """

    def __init__(
        self,
        catalog: CatalogService,
        rule_engine: RuleEngine,
        ai_classifier: AIClassifierAdapter,
        override: BusinessRuleOverride,
    ):
        self.catalog = catalog
        self.rule_engine = rule_engine
        self.ai_classifier = ai_classifier
        self.override = override
        self._stages: Sequence[Stage] = (
            self._from_catalog,
            self._from_rules,
            self._from_ai,
        )

    async def classify_items(self, items: List[BasketItem], context: ClassificationContext) -> List[CategorizedItem]:
        """Classify all items concurrently, preserving input order"""
        return list(await asyncio.gather(*(self.classify_item(item, context) for item in items)))

    async def classify_item(self, item: BasketItem, context: ClassificationContext) -> CategorizedItem:
        started = time.perf_counter()

        try:
            resolution = await self._resolve(item, context)
        except Exception as e:
            logger.error("item_processing_failed", sku=item.sku, error=str(e), exc_info=True)
            resolution = Errored(message=str(e))

        latency_ms = (time.perf_counter() - started) * 1000

        logger.info("item_classified",
                    sku=item.sku,
                    source=resolution.source.value,
                    is_eligible=resolution.is_eligible,
                    confidence=resolution.confidence,
                    latency_ms=round(latency_ms, 2))
        ITEMS_CLASSIFIED.labels(
            source=resolution.source.value,
            eligible=str(resolution.is_eligible).lower(),
        ).inc()

        return CategorizedItem(
            item=item,
            is_eligible=resolution.is_eligible,
            reason=resolution.reason,
            category=resolution.category,
            provenance=Provenance(
                source=resolution.source,
                confidence=resolution.confidence,
                latency_ms=latency_ms,
            ),
        )

    async def _resolve(self, item: BasketItem, context: ClassificationContext) -> Resolution:
        for stage in self._stages:
            resolution = await stage(item, context)
            if resolution is not None:
                return resolution
        # The AI stage always resolves; reaching here means the chain is miswired
        raise RuntimeError("no classification stage resolved the item")

    # ---- stages -------------------------------------------------------------------------

    async def _from_catalog(self, item: BasketItem, context: ClassificationContext) -> Optional[Resolution]:
        entry = await self.catalog.get_item(item.sku)
        if entry is None:
            return None

        if entry.ai_classification is not None:
            return CatalogResolved(
                entry=entry,
                verdict=entry.ai_classification,
                source=ResolutionSource.CACHE,
            )

        category = entry.normalized_category or normalize_category(entry.original_category)
        verdict = AIVerdict(
            is_eligible=category not in INELIGIBLE_CATALOG_CATEGORIES,
            confidence=CATALOG_MATCH_CONFIDENCE,
            reason=f"Catalog match: {category}",
            source=VerdictSource.CATALOG,
            category=category,
        )
        return CatalogResolved(entry=entry, verdict=verdict, source=ResolutionSource.CATALOG)

    async def _from_rules(self, item: BasketItem, context: ClassificationContext) -> Optional[Resolution]:
        evaluation = self.rule_engine.evaluate(item, context.merchant_rules)
        if not evaluation.is_definitive:
            return None
        return RulesResolved(evaluation=evaluation)

    async def _from_ai(self, item: BasketItem, context: ClassificationContext) -> Optional[Resolution]:
        raw = await self.ai_classifier.classify(item, context)
        verdict = self.ai_classifier.apply_confidence_floor(raw, item)
        verdict = self.override.apply(verdict, item, context.merchant_rules)

        await self._write_back(item, verdict)

        return AIResolved(verdict=verdict)

    async def _write_back(self, item: BasketItem, verdict: AIVerdict) -> None:
        try:
            await self.catalog.record_verdict(item, verdict)
        except Exception as e:
            logger.error("catalog_write_back_failed", sku=item.sku, error=str(e))
