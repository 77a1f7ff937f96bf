"""
Catalog entry and cached AI verdict

These are the only records the pipeline owns beyond a single request:
created on first AI classification, refreshed on every new verdict.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNCERTAIN_CONFIDENCE = 0.7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerdictSource(str, Enum):
    """Who produced an eligibility verdict"""
    RULES = "rules"
    AI = "ai"
    CATALOG = "catalog"
    MANUAL = "manual"


class AIVerdict(BaseModel):
    """
    An eligibility decision with confidence.

    Confidence is clamped into [0, 1] on construction so malformed upstream
    values never escape validation.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "is_eligible": True,
                "confidence": 0.92,
                "reason": "Prepared meal for immediate consumption",
                "source": "ai",
                "category": "prepared_meal",
                "model_version": "claude-sonnet-4-20250514",
            }
        },
    )

    is_eligible: bool
    confidence: float
    reason: str
    source: VerdictSource = VerdictSource.AI
    category: Optional[str] = None
    model_version: Optional[str] = None
    classified_at: datetime = Field(default_factory=_utcnow)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        if value != value:  # NaN
            return 0.0
        return max(0.0, min(1.0, value))

    @property
    def is_uncertain(self) -> bool:
        return self.confidence < UNCERTAIN_CONFIDENCE


class CatalogEntry(BaseModel):
    """Known product, keyed by SKU"""
    sku: str
    name: str
    description: Optional[str] = None
    original_category: Optional[str] = None
    normalized_category: Optional[str] = None
    brand: Optional[str] = None
    unit_price: Optional[Decimal] = None
    contains_alcohol: bool = False
    ai_classification: Optional[AIVerdict] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def has_ai_classification(self) -> bool:
        return self.ai_classification is not None
