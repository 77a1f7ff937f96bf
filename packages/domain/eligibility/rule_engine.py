"""
Rule Engine - Deterministic eligibility checks against merchant rules

NO AI CALLS - Pure rule-based logic.

Evaluation order (first match wins):
1. Merchant category rule - declared category equals the rule name
   (case-insensitive), or a rule keyword appears in the item name or
   description and none of the rule's excluded keywords do
2. Absolute prohibited keywords (whole words) - always ineligible, whatever the merchant says
3. Item alcohol flag vs the merchant's alcohol-in-combo policy

Anything else is "undecided" and the item is handed to the AI classifier.
"""
import re
from typing import Optional, Tuple

import structlog

from packages.common.schemas.basket import BasketItem
from packages.common.schemas.rules import CategoryRule, MerchantRules
from packages.domain.eligibility.categories import ALCOHOL_PROHIBITED, PROHIBITED
from packages.domain.eligibility.schemas import RulesEvaluation

logger = structlog.get_logger()

PROHIBITED_KEYWORDS: Tuple[str, ...] = (
    "alcohol",
    "wine",
    "beer",
    "tobacco",
    "cigarette",
    "vodka",
    "whiskey",
    "rum",
    "gin",
)

RULE_MATCH_CONFIDENCE = 0.95
ABSOLUTE_CONFIDENCE = 1.0


class RuleEngine:
    """Evaluates an item against merchant rules without any external calls"""

    def __init__(self, prohibited_keywords: Tuple[str, ...] = PROHIBITED_KEYWORDS):
        self.prohibited_keywords = prohibited_keywords
        # Whole words (optionally plural): "gin" must not hit "ginger" or "original"
        self._prohibited_patterns = [
            (kw, re.compile(rf"\b{re.escape(kw)}s?\b")) for kw in prohibited_keywords
        ]

    def evaluate(self, item: BasketItem, merchant_rules: MerchantRules) -> RulesEvaluation:
        """
        Evaluate one item.

        Args:
            item: Basket line item
            merchant_rules: Rules for the selling merchant

        Returns:
            RulesEvaluation - definitive verdict, or undecided
        """
        try:
            rule = self._match_category_rule(item, merchant_rules)
            if rule is not None:
                return RulesEvaluation(
                    is_definitive=True,
                    is_eligible=rule.is_eligible,
                    confidence=RULE_MATCH_CONFIDENCE,
                    reason=(
                        f"Eligible {rule.category_name}"
                        if rule.is_eligible
                        else f"Not eligible: {rule.category_name}"
                    ),
                    category=rule.category_name,
                    rule_name=rule.category_name,
                )

            keyword = self._match_prohibited_keyword(item)
            if keyword is not None:
                return RulesEvaluation(
                    is_definitive=True,
                    is_eligible=False,
                    confidence=ABSOLUTE_CONFIDENCE,
                    reason=f"Contains prohibited keyword: {keyword}",
                    category=PROHIBITED,
                    rule_name="prohibited_keyword",
                )

            if item.item_attributes.contains_alcohol and not merchant_rules.allow_alcohol_in_combos:
                return RulesEvaluation(
                    is_definitive=True,
                    is_eligible=False,
                    confidence=ABSOLUTE_CONFIDENCE,
                    reason="Alcohol not allowed for this merchant type",
                    category=ALCOHOL_PROHIBITED,
                    rule_name="alcohol_policy",
                )

            return RulesEvaluation.undecided()

        except Exception as e:
            logger.error("rules_evaluation_failed", sku=item.sku, error=str(e), exc_info=True)
            return RulesEvaluation.undecided(reason=f"Rules evaluation error: {e}")

    @staticmethod
    def _match_category_rule(item: BasketItem, merchant_rules: MerchantRules) -> Optional[CategoryRule]:
        declared = item.category.strip().lower()
        for rule in merchant_rules.category_rules:
            if declared and rule.category_name.lower() == declared:
                return rule
            if rule.matching_keyword(item.name, item.description):
                return rule
        return None

    def _match_prohibited_keyword(self, item: BasketItem) -> Optional[str]:
        text = f"{item.name} {item.description}".lower()
        for keyword, pattern in self._prohibited_patterns:
            if pattern.search(text):
                return keyword
        return None


# Singleton instance
rule_engine = RuleEngine()
