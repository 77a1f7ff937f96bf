"""
Category vocabulary for catalog entries and verdicts

Normalized categories are what the catalog stores. Verdict categories are
the labels attached to a decision (why an item was accepted or refused).
"""
from enum import Enum
from typing import Optional


class NormalizedCategory(str, Enum):
    PREPARED_MEAL = "prepared_meal"
    FRESH_FRUIT = "fresh_fruit"
    BEVERAGE = "beverage"
    ALCOHOLIC = "alcoholic"
    NON_FOOD = "non_food"


# Catalog entries without a cached verdict in these categories are refused
INELIGIBLE_CATALOG_CATEGORIES = frozenset({
    NormalizedCategory.ALCOHOLIC.value,
    NormalizedCategory.NON_FOOD.value,
})

# Verdict category labels
PROHIBITED = "prohibited"
ALCOHOL_PROHIBITED = "alcohol_prohibited"
ALCOHOL_LIMIT_EXCEEDED = "alcohol_limit_exceeded"
INELIGIBLE = "ineligible"
UNCERTAIN = "uncertain"
FALLBACK = "fallback"
ERROR = "error"

# (substrings, normalized category), checked in order
_NORMALIZATION_RULES = (
    (("meal", "pizza", "burger", "sandwich", "prepared", "ready"), NormalizedCategory.PREPARED_MEAL),
    (("fruit", "vegetable", "fresh", "produce"), NormalizedCategory.FRESH_FRUIT),
    (("alcohol", "beer", "wine", "spirit", "liquor"), NormalizedCategory.ALCOHOLIC),
    (("beverage", "drink", "juice", "soda", "water"), NormalizedCategory.BEVERAGE),
    (("dairy", "milk", "cheese", "yogurt"), NormalizedCategory.BEVERAGE),
    (("bakery", "bread", "pastry"), NormalizedCategory.PREPARED_MEAL),
)


def normalize_category(original_category: Optional[str]) -> str:
    """
    Map a free-text merchant category onto the catalog vocabulary.

    Unknown or empty categories are treated as non-food.
    """
    if not original_category:
        return NormalizedCategory.NON_FOOD.value

    category = original_category.lower()
    for needles, normalized in _NORMALIZATION_RULES:
        if any(n in category for n in needles):
            return normalized.value
    return NormalizedCategory.NON_FOOD.value


def category_from_verdict(is_eligible: bool, reason: str, declared_category: Optional[str]) -> Optional[str]:
    """Derive a category label from a classifier's verdict text"""
    text = (reason or "").lower()
    if not is_eligible:
        if "alcohol" in text:
            return NormalizedCategory.ALCOHOLIC.value
        if "non-food" in text or "cosmetic" in text:
            return NormalizedCategory.NON_FOOD.value
        return INELIGIBLE
    if "meal" in text or "food" in text:
        return NormalizedCategory.PREPARED_MEAL.value
    return declared_category
