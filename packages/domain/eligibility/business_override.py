"""
Business Rule Override - hard merchant constraints applied on top of AI

The AI may say "eligible"; these checks can only take that away, never grant
it. Ineligible verdicts pass through untouched. Inputs are never mutated, a
new verdict is returned whenever something changes.
"""
import structlog

from packages.common.schemas.basket import BasketItem
from packages.common.schemas.catalog import AIVerdict
from packages.common.schemas.rules import MerchantRules
from packages.domain.eligibility.categories import ALCOHOL_LIMIT_EXCEEDED, ALCOHOL_PROHIBITED, ERROR

logger = structlog.get_logger()

ALCOHOL_COMBO_RULE_ID = "menu_avec_alcool"
ALCOHOL_OVERRIDE_MIN_CONFIDENCE = 0.9


class BusinessRuleOverride:
    """Re-applies merchant alcohol constraints to an eligible verdict"""

    def apply(self, verdict: AIVerdict, item: BasketItem, merchant_rules: MerchantRules) -> AIVerdict:
        if not verdict.is_eligible:
            return verdict

        try:
            attrs = item.item_attributes

            if attrs.contains_alcohol and not merchant_rules.allow_alcohol_in_combos:
                logger.info("business_rule_override",
                            sku=item.sku,
                            rule="alcohol_not_allowed",
                            merchant_id=merchant_rules.merchant_id)
                return verdict.model_copy(update={
                    "is_eligible": False,
                    "confidence": max(verdict.confidence, ALCOHOL_OVERRIDE_MIN_CONFIDENCE),
                    "reason": "Business rule override: Alcohol not allowed for this merchant",
                    "category": ALCOHOL_PROHIBITED,
                })

            if attrs.is_combo_item and attrs.contains_alcohol:
                combo_rule = merchant_rules.rule_for(ALCOHOL_COMBO_RULE_ID)
                limit = combo_rule.max_alcohol_percentage if combo_rule else None
                abv = attrs.alcohol_by_volume
                if limit is not None and abv is not None and abv > limit:
                    logger.info("business_rule_override",
                                sku=item.sku,
                                rule="alcohol_limit_exceeded",
                                alcohol_percent=str(abv),
                                max_percent=str(limit))
                    return verdict.model_copy(update={
                        "is_eligible": False,
                        "confidence": 1.0,
                        "reason": f"Alcohol percentage ({abv}%) exceeds limit ({limit}%)",
                        "category": ALCOHOL_LIMIT_EXCEEDED,
                    })

            return verdict

        except Exception as e:
            logger.error("business_rule_override_failed", sku=item.sku, error=str(e), exc_info=True)
            return verdict.model_copy(update={
                "is_eligible": False,
                "confidence": 0.0,
                "reason": f"Business rules validation error: {e}",
                "category": ERROR,
            })


# Singleton instance
business_rule_override = BusinessRuleOverride()
