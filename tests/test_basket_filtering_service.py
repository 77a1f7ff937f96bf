from datetime import datetime, timezone
from decimal import Decimal

import pytest

from packages.common.config import Settings
from packages.common.schemas.basket import ResolutionSource
from packages.common.schemas.catalog import AIVerdict, CatalogEntry
from packages.common.tiered_cache import TieredCache
from packages.domain.eligibility.factory import build_basket_filtering_service
from tests.support import (
    FakeAIService,
    FakeCatalogStore,
    FakeRedis,
    FakeRulesStore,
    RecordingAuditSink,
    ai_reply,
    build_pipeline,
    make_item,
    make_request,
)


def salad_entry():
    return CatalogEntry(
        sku="SKU-SALADE",
        name="Salade César",
        normalized_category="prepared_meal",
        ai_classification=AIVerdict(
            is_eligible=True, confidence=0.91, reason="Prepared meal", category="prepared_meal",
        ),
    )


class TestFilterBasket:

    @pytest.mark.asyncio
    async def test_rules_and_cached_verdict_make_basket_fully_eligible(self):
        ai = FakeAIService(ai_reply(False, 0.99, "should not be asked"))
        service = build_pipeline(ai_service=ai, catalog_store=FakeCatalogStore([salad_entry()]))
        formule = make_item("SKU-FORMULE", "Formule Déjeuner", category="Menu with Alcohol", price_cents=1450)
        salade = make_item("SKU-SALADE", "Salade César", category="Salads", price_cents=890)

        response = await service.filter_basket(make_request([formule, salade]))

        assert [ci.provenance.source for ci in response.categorized_items] == [
            ResolutionSource.RULES,
            ResolutionSource.CACHE,
        ]
        assert response.is_fully_eligible is True
        assert response.eligible_amount == Decimal("23.40")
        assert response.eligible_amount == response.total_amount
        assert ai.call_count == 0

    @pytest.mark.asyncio
    async def test_mixed_basket_with_fee(self):
        ai = FakeAIService(ai_reply(True, 0.92, "Prepared meal"))
        service = build_pipeline(ai_service=ai)
        items = [
            make_item("SKU-POKE", "Poke Bowl Saumon", category="Bowls", price_cents=1100),
            make_item("SKU-WINE", "Red Wine 750ml", category="Beverages", price_cents=1200),
        ]
        request = make_request(items, charges=[
            {"charge_type": "delivery_fee", "charge_name": "Livraison", "charge_amount": 299},
        ])

        response = await service.filter_basket(request)

        poke, wine = response.categorized_items
        assert poke.is_eligible is True
        assert poke.provenance.source == ResolutionSource.AI
        assert wine.is_eligible is False
        assert wine.provenance.source == ResolutionSource.RULES
        assert response.eligible_amount == Decimal("11.00")
        assert response.ineligible_amount == Decimal("14.99")
        assert response.ineligibility_reason == "Contains ineligible items and delivery/service fees"
        assert ai.call_count == 1

    @pytest.mark.asyncio
    async def test_second_basket_reuses_ai_verdict(self):
        ai = FakeAIService(ai_reply(True, 0.92, "Prepared meal"))
        service = build_pipeline(ai_service=ai)
        request = make_request([make_item("SKU-POKE", "Poke Bowl Saumon", category="Bowls")])

        await service.filter_basket(request)
        response = await service.filter_basket(request)

        assert response.categorized_items[0].provenance.source == ResolutionSource.CACHE
        assert ai.call_count == 1
        stats = service.get_cache_statistics()
        assert stats.total_hits == 1
        assert stats.total_misses == 1

    @pytest.mark.asyncio
    async def test_ai_outage_leaves_item_ineligible(self):
        service = build_pipeline(ai_service=FakeAIService(ConnectionError("down")))
        request = make_request([make_item("SKU-POKE", "Poke Bowl Saumon", category="Bowls")])

        response = await service.filter_basket(request)

        item = response.categorized_items[0]
        assert item.is_eligible is False
        assert item.reason == "Low confidence result: AI unavailable"
        assert response.ineligibility_reason == "Basket contains no eligible items"

    @pytest.mark.asyncio
    async def test_merchant_specific_limit_is_applied(self):
        rules = FakeRulesStore()
        service = build_pipeline(rules_store=rules)
        await service.rules_loader.update(
            (await service.rules_loader.get("merchant-1")).model_copy(update={"daily_limit": Decimal("10.00")})
        )
        items = [make_item("S1", "Sandwich Club", price_cents=800), make_item("S2", "Pizza Regina", price_cents=700)]

        response = await service.filter_basket(make_request(items))

        assert response.eligible_amount == Decimal("10.00")
        assert response.ineligibility_reason == "Daily limit exceeded by 5.00 EUR"

    @pytest.mark.asyncio
    async def test_outside_meal_hours_is_still_processed(self):
        service = build_pipeline()
        request = make_request(
            [make_item("S1", "Sandwich Club")],
            timestamp=datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc),
        )

        response = await service.filter_basket(request)

        assert response.is_fully_eligible is True


class TestAudit:

    @pytest.mark.asyncio
    async def test_audit_sink_receives_response(self):
        sink = RecordingAuditSink()
        service = build_pipeline(audit_sink=sink)
        request = make_request([make_item("S1", "Sandwich Club")])

        response = await service.filter_basket(request)

        assert sink.records == [(request, response)]

    @pytest.mark.asyncio
    async def test_failing_audit_sink_does_not_fail_request(self):

        class BrokenSink:
            def record_transaction(self, request, response):
                raise RuntimeError("queue down")

        service = build_pipeline(audit_sink=BrokenSink())

        response = await service.filter_basket(make_request([make_item("S1", "Sandwich Club")]))

        assert response.is_fully_eligible is True


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_clear_cache_resets_statistics(self):
        service = build_pipeline()
        await service.filter_basket(make_request([make_item("S1", "Sandwich Club")]))
        assert service.get_cache_statistics().total_requests == 1

        await service.clear_cache()

        assert service.get_cache_statistics().total_requests == 0

    @pytest.mark.asyncio
    async def test_shutdown_flushes_write_backs_and_closes_cache(self):
        redis = FakeRedis()
        store = FakeCatalogStore()
        service = build_pipeline(
            ai_service=FakeAIService(ai_reply(True, 0.9, "Prepared meal")),
            catalog_store=store,
            cache=TieredCache(redis),
        )
        await service.filter_basket(make_request([make_item("SKU-POKE", "Poke Bowl Saumon", category="Bowls")]))

        await service.shutdown()

        assert [e.sku for e in store.upserts] == ["SKU-POKE"]
        assert redis.closed is True
        assert any(key.endswith("catalog:item:SKU-POKE") for key in redis.data)


@pytest.mark.asyncio
async def test_factory_builds_working_service():
    settings = Settings(ENABLE_AI_CLASSIFICATION=True, AI_MAX_RETRIES=1)
    ai = FakeAIService(ai_reply(True, 0.9, "Prepared meal"))
    service = build_basket_filtering_service(settings, cache=TieredCache(), ai_service=ai)

    response = await service.filter_basket(
        make_request([make_item("SKU-POKE", "Poke Bowl Saumon", category="Bowls")])
    )

    assert service.ai_classifier.model_version == "test-model"
    assert response.categorized_items[0].provenance.source == ResolutionSource.AI
