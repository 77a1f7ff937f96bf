"""
Data schemas for the eligibility pipeline

Each item moves through ordered stages and ends in exactly one of the
resolution variants below:

    CatalogResolved | RulesResolved | AIResolved | Errored

All variants expose the same read-only surface (is_eligible, reason,
category, confidence, source) so the orchestrator never branches on type.
"""
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from packages.common.schemas.basket import BasketRequest, ResolutionSource
from packages.common.schemas.catalog import AIVerdict, CatalogEntry
from packages.common.schemas.rules import MerchantRules
from packages.domain.eligibility.categories import ERROR

UNDECIDED_REASON = "No matching rules found - requires AI analysis"


class RulesEvaluation(BaseModel):
    """
    Result from the deterministic rule engine.

    A non-definitive result means "defer to AI". Its confidence is always 0.0
    and it is never surfaced as a final verdict.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "is_definitive": True,
                "is_eligible": False,
                "confidence": 1.0,
                "reason": "Contains prohibited keyword: wine",
                "category": "prohibited",
                "rule_name": "prohibited_keyword",
            }
        },
    )

    is_definitive: bool
    is_eligible: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: str
    category: Optional[str] = None
    rule_name: Optional[str] = None

    @classmethod
    def undecided(cls, reason: str = UNDECIDED_REASON) -> "RulesEvaluation":
        return cls(is_definitive=False, is_eligible=False, confidence=0.0, reason=reason)


class ClassificationContext(BaseModel):
    """Merchant context handed to every stage for one basket"""

    model_config = ConfigDict(frozen=True)

    merchant_id: str
    merchant_name: str
    merchant_type: Optional[str] = None
    country_code: str = "FR"
    merchant_rules: MerchantRules

    @classmethod
    def from_request(cls, request: BasketRequest, rules: MerchantRules) -> "ClassificationContext":
        merchant = request.merchant_data
        return cls(
            merchant_id=merchant.merchant_id,
            merchant_name=merchant.merchant_name,
            merchant_type=merchant.merchant_type or rules.merchant_type,
            country_code=request.transaction_data.country_code.upper(),
            merchant_rules=rules,
        )


@dataclass(frozen=True)
class CatalogResolved:
    """Catalog hit. `source` is CACHE when a cached AI verdict decided it."""
    entry: CatalogEntry
    verdict: AIVerdict
    source: ResolutionSource

    @property
    def is_eligible(self) -> bool:
        return self.verdict.is_eligible

    @property
    def reason(self) -> str:
        return self.verdict.reason

    @property
    def category(self) -> Optional[str]:
        return self.verdict.category

    @property
    def confidence(self) -> float:
        return self.verdict.confidence


@dataclass(frozen=True)
class RulesResolved:
    evaluation: RulesEvaluation
    source: ResolutionSource = ResolutionSource.RULES

    @property
    def is_eligible(self) -> bool:
        return self.evaluation.is_eligible

    @property
    def reason(self) -> str:
        return self.evaluation.reason

    @property
    def category(self) -> Optional[str]:
        return self.evaluation.category

    @property
    def confidence(self) -> float:
        return self.evaluation.confidence


@dataclass(frozen=True)
class AIResolved:
    """AI verdict after confidence floor and business overrides"""
    verdict: AIVerdict
    source: ResolutionSource = ResolutionSource.AI

    @property
    def is_eligible(self) -> bool:
        return self.verdict.is_eligible

    @property
    def reason(self) -> str:
        return self.verdict.reason

    @property
    def category(self) -> Optional[str]:
        return self.verdict.category

    @property
    def confidence(self) -> float:
        return self.verdict.confidence


@dataclass(frozen=True)
class Errored:
    message: str
    source: ResolutionSource = ResolutionSource.ERROR
    is_eligible: bool = False
    category: Optional[str] = ERROR
    confidence: float = 0.0

    @property
    def reason(self) -> str:
        return f"Processing error: {self.message}"


Resolution = Union[CatalogResolved, RulesResolved, AIResolved, Errored]
