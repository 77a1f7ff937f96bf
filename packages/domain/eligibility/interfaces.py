"""
Collaborator interfaces for the eligibility pipeline

Stores, the external classifier and the audit sink are injected into the
services as Protocol implementations, so storage and AI backends can be
swapped via configuration without touching calling code.
"""
from typing import Any, Dict, List, Optional, Protocol

from packages.common.schemas.basket import BasketFilteringResponse, BasketRequest
from packages.common.schemas.catalog import CatalogEntry
from packages.common.schemas.rules import CountryRules, MerchantRules


class CatalogStore(Protocol):
    """Durable catalog of known products, keyed by SKU"""

    async def get_by_sku(self, sku: str) -> Optional[CatalogEntry]:
        ...

    async def upsert(self, entry: CatalogEntry) -> None:
        ...

    async def search(self, term: str, limit: int = 50) -> List[CatalogEntry]:
        ...

    async def delete_all(self) -> int:
        ...

    async def count(self) -> int:
        ...


class RulesStore(Protocol):
    """Merchant and country rule records. Missing records return None."""

    async def get_merchant_rules(self, merchant_id: str) -> Optional[MerchantRules]:
        ...

    async def get_country_rules(self, country_code: str) -> Optional[CountryRules]:
        ...

    async def save_merchant_rules(self, rules: MerchantRules) -> None:
        ...


class AIService(Protocol):
    """
    Raw external classifier.

    Implementations return the model's text output and raise on any
    transport or API failure. Parsing and retry live in the adapter.
    """

    model_version: str

    async def classify(self, prompt: str, params: Dict[str, Any]) -> str:
        ...

    async def is_healthy(self) -> bool:
        ...


class AuditSink(Protocol):
    """Fire-and-forget transaction audit. Must not raise."""

    def record_transaction(self, request: BasketRequest, response: BasketFilteringResponse) -> None:
        ...
