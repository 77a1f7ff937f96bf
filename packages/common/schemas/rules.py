"""
Merchant and country eligibility rules

Rules are owned by the rules store and read-only to the pipeline, so every
model here is frozen. Collections are tuples.
"""
from datetime import datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

# datetime.weekday(): Monday == 0
MONDAY_TO_SATURDAY: Tuple[int, ...] = (0, 1, 2, 3, 4, 5)


class RulesStatus(str, Enum):
    ACTIVE = "active"        # merchant-specific rules from the store
    DEFAULT = "default"      # derived from country defaults
    FALLBACK = "fallback"    # store unavailable - conservative


class CategoryRule(BaseModel):
    """A named category with its eligibility and matching keywords"""

    model_config = ConfigDict(frozen=True)

    category_id: str
    category_name: str
    is_eligible: bool
    keywords: Tuple[str, ...] = ()
    excluded_keywords: Tuple[str, ...] = ()
    description: Optional[str] = None
    eligibility_reason: Optional[str] = None
    max_alcohol_percentage: Optional[Decimal] = None
    requires_accompanying_food: bool = False
    requires_immediate_consumption: bool = False

    def matching_keyword(self, *texts: str) -> Optional[str]:
        """
        First keyword found in any of the texts (case-insensitive substring).

        Each text is searched on its own. An excluded keyword in any text
        suppresses all matches.
        """
        haystacks = [t.lower() for t in texts if t]
        if not haystacks:
            return None
        for excluded in self.excluded_keywords:
            if excluded and any(excluded.lower() in h for h in haystacks):
                return None
        for keyword in self.keywords:
            if keyword and any(keyword.lower() in h for h in haystacks):
                return keyword
        return None


class TimeWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: time
    end: time

    @model_validator(mode="after")
    def check_order(self):
        if self.start >= self.end:
            raise ValueError(f"time window start {self.start} must be before end {self.end}")
        return self

    def contains(self, moment: time) -> bool:
        return self.start <= moment <= self.end


class TimeRestrictions(BaseModel):
    """Optional lunch / dinner windows during which vouchers are accepted"""

    model_config = ConfigDict(frozen=True)

    lunch: Optional[TimeWindow] = None
    dinner: Optional[TimeWindow] = None

    @property
    def has_time_restrictions(self) -> bool:
        return self.lunch is not None or self.dinner is not None

    def allows(self, moment: time) -> bool:
        if not self.has_time_restrictions:
            return True
        return any(w.contains(moment) for w in (self.lunch, self.dinner) if w is not None)


class MerchantRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    merchant_id: str
    merchant_name: str = ""
    merchant_type: Optional[str] = None
    country_code: str = "FR"
    daily_limit: Decimal = Decimal("25.00")
    category_rules: Tuple[CategoryRule, ...] = ()
    allow_alcohol_in_combos: bool = False
    time_restrictions: TimeRestrictions = Field(default_factory=TimeRestrictions)
    allowed_days: Tuple[int, ...] = MONDAY_TO_SATURDAY
    status: RulesStatus = RulesStatus.ACTIVE
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def rule_for(self, category_id: str) -> Optional[CategoryRule]:
        for rule in self.category_rules:
            if rule.category_id == category_id:
                return rule
        return None

    def is_time_allowed(self, moment: datetime) -> bool:
        """Whether a transaction at `moment` falls on an allowed day and window"""
        if self.allowed_days and moment.weekday() not in self.allowed_days:
            return False
        return self.time_restrictions.allows(moment.time())


class CountryRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    country_code: str
    country_name: str
    default_daily_limit: Decimal
    default_category_rules: Tuple[CategoryRule, ...] = ()
    default_time_restrictions: TimeRestrictions = Field(default_factory=TimeRestrictions)
    default_allowed_days: Tuple[int, ...] = MONDAY_TO_SATURDAY
    regulatory_framework: str = ""
    requires_employee_validation: bool = False
