"""
Wiring for the basket filtering service

Builds the pipeline from Settings. Every collaborator can be passed in
explicitly (tests, scripts); otherwise the configured backends are used.
"""
from typing import Optional

import structlog

from packages.common.config import Settings
from packages.common.tiered_cache import TieredCache, create_cache
from packages.domain.eligibility.ai_classifier import AIClassifierAdapter
from packages.domain.eligibility.ai_service import AnthropicAIService
from packages.domain.eligibility.basket_filtering_service import BasketFilteringService
from packages.domain.eligibility.business_override import business_rule_override
from packages.domain.eligibility.catalog_service import CatalogService
from packages.domain.eligibility.eligibility_classifier import EligibilityClassifier
from packages.domain.eligibility.interfaces import AIService, AuditSink, CatalogStore, RulesStore
from packages.domain.eligibility.response_aggregator import response_aggregator
from packages.domain.eligibility.rule_engine import rule_engine
from packages.domain.eligibility.rules_loader import MerchantRulesLoader

logger = structlog.get_logger()


def build_ai_classifier(settings: Settings, service: Optional[AIService] = None) -> AIClassifierAdapter:
    if service is None and settings.enable_ai_classification and settings.anthropic_api_key:
        service = AnthropicAIService(api_key=settings.anthropic_api_key, model=settings.ai_model)

    return AIClassifierAdapter(
        service,
        enabled=settings.enable_ai_classification,
        max_retries=settings.ai_max_retries,
        timeout_seconds=settings.ai_timeout_seconds,
        max_tokens=settings.ai_max_tokens,
        temperature=settings.ai_temperature,
        confidence_threshold=settings.ai_confidence_threshold,
    )


def build_basket_filtering_service(
    settings: Settings,
    *,
    cache: Optional[TieredCache] = None,
    catalog_store: Optional[CatalogStore] = None,
    rules_store: Optional[RulesStore] = None,
    ai_service: Optional[AIService] = None,
    audit_sink: Optional[AuditSink] = None,
) -> BasketFilteringService:
    """
    Assemble the full pipeline.

    Args:
        settings: Application settings
        cache: Pre-built cache (defaults to L1 + Redis per settings)
        catalog_store: Durable catalog (None = cache only)
        rules_store: Merchant rules store (None = country defaults)
        ai_service: External classifier (defaults to Anthropic when a key is set)
        audit_sink: Transaction audit sink (None = no audit)
    """
    cache = cache or create_cache(settings)

    catalog = CatalogService(
        cache,
        catalog_store,
        catalog_ttl=settings.cache_catalog_ttl_seconds,
        ai_ttl=settings.cache_ai_ttl_seconds,
        remote_catalog_ttl=settings.redis_catalog_ttl_seconds,
        remote_ai_ttl=settings.redis_ai_ttl_seconds,
    )

    ai_classifier = build_ai_classifier(settings, ai_service)

    classifier = EligibilityClassifier(
        catalog=catalog,
        rule_engine=rule_engine,
        ai_classifier=ai_classifier,
        override=business_rule_override,
    )

    rules_loader = MerchantRulesLoader(
        rules_store,
        ttl_seconds=settings.merchant_rules_ttl_seconds,
        default_ttl_seconds=settings.default_rules_ttl_seconds,
    )

    logger.info("basket_filtering_service_built",
                caching=settings.enable_caching,
                redis=cache.has_remote,
                ai_available=ai_classifier.available,
                model=ai_classifier.model_version)

    return BasketFilteringService(
        rules_loader=rules_loader,
        classifier=classifier,
        aggregator=response_aggregator,
        cache=cache,
        audit_sink=audit_sink,
    )
