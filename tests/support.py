"""Fakes and builders shared by the test modules."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from packages.common.schemas.basket import BasketItem, BasketRequest
from packages.common.schemas.catalog import CatalogEntry
from packages.common.schemas.rules import CountryRules, MerchantRules
from packages.common.tiered_cache import TieredCache
from packages.domain.eligibility.ai_classifier import AIClassifierAdapter
from packages.domain.eligibility.basket_filtering_service import BasketFilteringService
from packages.domain.eligibility.business_override import BusinessRuleOverride
from packages.domain.eligibility.catalog_service import CatalogService
from packages.domain.eligibility.default_rules import default_country_rules, default_merchant_rules
from packages.domain.eligibility.eligibility_classifier import EligibilityClassifier
from packages.domain.eligibility.response_aggregator import ResponseAggregator
from packages.domain.eligibility.rule_engine import RuleEngine
from packages.domain.eligibility.rules_loader import MerchantRulesLoader


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (decode_responses=True)."""

    def __init__(self, fail: bool = False):
        self.data: Dict[str, str] = {}
        self.fail = fail
        self.closed = False
        self.set_calls: List[tuple] = []

    async def get(self, name: str) -> Optional[str]:
        if self.fail:
            raise ConnectionError("redis down")
        return self.data.get(name)

    async def set(self, name: str, value: str, ex: Optional[int] = None) -> bool:
        if self.fail:
            raise ConnectionError("redis down")
        self.set_calls.append((name, ex))
        self.data[name] = value
        return True

    async def delete(self, *names: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        return sum(1 for name in names if self.data.pop(name, None) is not None)

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        if self.fail:
            raise ConnectionError("redis down")
        prefix = (match or "").rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key

    async def aclose(self) -> None:
        self.closed = True


class FakeCatalogStore:

    def __init__(self, entries: Sequence[CatalogEntry] = (), fail: bool = False):
        self.entries: Dict[str, CatalogEntry] = {e.sku: e for e in entries}
        self.fail = fail
        self.lookups: List[str] = []
        self.upserts: List[CatalogEntry] = []

    async def get_by_sku(self, sku: str) -> Optional[CatalogEntry]:
        self.lookups.append(sku)
        if self.fail:
            raise ConnectionError("database down")
        return self.entries.get(sku)

    async def upsert(self, entry: CatalogEntry) -> None:
        if self.fail:
            raise ConnectionError("database down")
        self.upserts.append(entry)
        self.entries[entry.sku] = entry

    async def search(self, term: str, limit: int = 50) -> List[CatalogEntry]:
        term = term.lower()
        return [e for e in self.entries.values() if term in e.name.lower()][:limit]

    async def delete_all(self) -> int:
        deleted = len(self.entries)
        self.entries.clear()
        return deleted

    async def count(self) -> int:
        return len(self.entries)


class FakeRulesStore:

    def __init__(
        self,
        merchants: Sequence[MerchantRules] = (),
        countries: Sequence[CountryRules] = (),
        fail: bool = False,
    ):
        self.merchants: Dict[str, MerchantRules] = {m.merchant_id: m for m in merchants}
        self.countries: Dict[str, CountryRules] = {c.country_code: c for c in countries}
        self.fail = fail
        self.merchant_calls = 0
        self.saved: List[MerchantRules] = []

    async def get_merchant_rules(self, merchant_id: str) -> Optional[MerchantRules]:
        self.merchant_calls += 1
        # Yield so concurrent callers actually interleave
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("rules store down")
        return self.merchants.get(merchant_id)

    async def get_country_rules(self, country_code: str) -> Optional[CountryRules]:
        return self.countries.get(country_code)

    async def save_merchant_rules(self, rules: MerchantRules) -> None:
        self.saved.append(rules)
        self.merchants[rules.merchant_id] = rules


class FakeAIService:
    """Returns queued replies in order; exceptions in the queue are raised."""

    model_version = "test-model"

    def __init__(self, *responses: Union[str, Exception], healthy: bool = True):
        self.responses = list(responses)
        self.prompts: List[str] = []
        self.healthy = healthy

    async def classify(self, prompt: str, params: Dict[str, Any]) -> str:
        self.prompts.append(prompt)
        index = min(len(self.prompts), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response

    async def is_healthy(self) -> bool:
        return self.healthy

    @property
    def call_count(self) -> int:
        return len(self.prompts)


class RecordingSleep:

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingAuditSink:

    def __init__(self):
        self.records = []

    def record_transaction(self, request, response) -> None:
        self.records.append((request, response))


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ai_reply(is_eligible: bool, confidence: float, reason: str) -> str:
    return json.dumps({"isEligible": is_eligible, "confidence": confidence, "reason": reason})


def make_item(
    sku: str,
    name: str,
    category: str = "Food",
    price_cents: int = 1000,
    description: Optional[str] = None,
    **attributes: Any,
) -> BasketItem:
    return BasketItem.model_validate({
        "item_data": {
            "item_id": f"id-{sku}",
            "sku": sku,
            "item_name": name,
            "item_description": description,
        },
        "category_data": {"primary_category": category},
        "pricing_data": {
            "quantity": 1,
            "unit_price_amount": price_cents,
            "total_price_amount": price_cents,
            "currency_code": "EUR",
        },
        "item_attributes": attributes,
    })


def make_request(
    items: Sequence[BasketItem],
    charges: Sequence[Dict[str, Any]] = (),
    total_cents: Optional[int] = None,
    country_code: str = "FR",
    merchant_id: str = "merchant-1",
    timestamp: Optional[datetime] = None,
) -> BasketRequest:
    subtotal = sum(item.pricing_data.total_price_amount for item in items)
    charges_total = sum(c["charge_amount"] for c in charges)
    return BasketRequest.model_validate({
        "transaction_data": {
            "basket_id": "basket-1",
            "transaction_id": "txn-1",
            "timestamp": (timestamp or datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc)).isoformat(),
            "currency_code": "EUR",
            "country_code": country_code,
        },
        "merchant_data": {"merchant_id": merchant_id, "merchant_name": "Chez Test"},
        "basket_items": [item.model_dump() for item in items],
        "additional_charges": list(charges),
        "basket_totals": {
            "subtotal_amount": subtotal,
            "total_charges_amount": charges_total,
            "total_amount": total_cents if total_cents is not None else subtotal + charges_total,
        },
    })


def french_rules(merchant_id: str = "merchant-1", **overrides: Any) -> MerchantRules:
    rules = default_merchant_rules(merchant_id, default_country_rules("FR"), "Chez Test")
    if overrides:
        rules = rules.model_copy(update=overrides)
    return rules


def build_pipeline(
    ai_service: Optional[FakeAIService] = None,
    catalog_store: Optional[FakeCatalogStore] = None,
    rules_store: Optional[FakeRulesStore] = None,
    audit_sink: Optional[RecordingAuditSink] = None,
    cache: Optional[TieredCache] = None,
    max_retries: int = 3,
) -> BasketFilteringService:
    cache = cache or TieredCache()
    catalog = CatalogService(cache, catalog_store)
    ai_classifier = AIClassifierAdapter(
        ai_service,
        max_retries=max_retries,
        timeout_seconds=5.0,
        sleep=RecordingSleep(),
    )
    classifier = EligibilityClassifier(
        catalog=catalog,
        rule_engine=RuleEngine(),
        ai_classifier=ai_classifier,
        override=BusinessRuleOverride(),
    )
    return BasketFilteringService(
        rules_loader=MerchantRulesLoader(rules_store),
        classifier=classifier,
        aggregator=ResponseAggregator(),
        cache=cache,
        audit_sink=audit_sink,
    )

