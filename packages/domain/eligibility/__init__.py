"""
Eligibility Module - meal voucher eligibility for basket line items

Fallback chain per item:
1. Catalog (TieredCache → store): cached AI verdict, or catalog category
2. Rules (deterministic): merchant category rules, prohibited keywords,
   alcohol policy
3. AI (Claude): classify, refuse low confidence, re-apply hard business rules,
   write the verdict back to the catalog

Cache strategy:
- First time seeing a SKU that rules can't decide → AI call
- Subsequent times → catalog/cache hit, no AI call

Example flow:
- "Red Wine 750ml" → prohibited keyword → ineligible (rules, 1.0)
- "Formule Déjeuner" → "Menu with Alcohol" rule → eligible (rules, 0.95)
- "Poke Bowl Saumon" → AI: prepared meal, 0.92 → eligible (ai), cached
- "Poke Bowl Saumon" again → eligible (cache)
"""

from packages.domain.eligibility.basket_filtering_service import BasketFilteringService
from packages.domain.eligibility.factory import build_basket_filtering_service
from packages.domain.eligibility.schemas import (
    AIResolved,
    CatalogResolved,
    ClassificationContext,
    Errored,
    RulesEvaluation,
    RulesResolved,
)

__all__ = [
    'AIResolved',
    'BasketFilteringService',
    'CatalogResolved',
    'ClassificationContext',
    'Errored',
    'RulesEvaluation',
    'RulesResolved',
    'build_basket_filtering_service',
]
