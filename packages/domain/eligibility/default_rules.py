"""
Built-in country rule sets

Used when the rules store has no record for a merchant (DEFAULT rules) or is
unreachable (FALLBACK rules). Unknown countries fall back to France.

France (Labour Code L3262-1): prepared meals eligible, menus may include
alcohol up to a third of the price, standalone alcohol and fees refused.
Belgium: prepared meals eligible, no alcohol at all.
"""
from datetime import time
from decimal import Decimal
from typing import Tuple

from packages.common.schemas.rules import (
    CategoryRule,
    CountryRules,
    MerchantRules,
    RulesStatus,
    TimeRestrictions,
    TimeWindow,
)

DEFAULT_COUNTRY = "FR"

STANDARD_MEAL_WINDOWS = TimeRestrictions(
    lunch=TimeWindow(start=time(11, 30), end=time(14, 30)),
    dinner=TimeWindow(start=time(19, 0), end=time(22, 0)),
)

FRENCH_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        category_id="prepared_meals",
        category_name="Prepared Meals",
        is_eligible=True,
        keywords=("sandwich", "salade", "pizza", "burger", "menu", "plat"),
        description="Ready-to-eat meals",
        eligibility_reason="Eligible under French meal voucher regulations",
        requires_immediate_consumption=True,
    ),
    CategoryRule(
        category_id="menu_avec_alcool",
        category_name="Menu with Alcohol",
        is_eligible=True,
        keywords=("menu", "formule"),
        description="Complete meal menus including alcohol",
        eligibility_reason="Allowed in France if alcohol < 1/3 of menu price",
        max_alcohol_percentage=Decimal("33.33"),
        requires_accompanying_food=True,
    ),
    CategoryRule(
        category_id="alcohol",
        category_name="Standalone Alcohol",
        is_eligible=False,
        keywords=("bière", "vin", "alcool", "spiritueux"),
        description="Alcoholic beverages purchased alone",
        eligibility_reason="Standalone alcohol prohibited",
    ),
    CategoryRule(
        category_id="delivery_fee",
        category_name="Delivery Fees",
        is_eligible=False,
        keywords=("livraison", "frais", "delivery"),
        description="Delivery and service charges",
        eligibility_reason="Service fees are not eligible",
    ),
)

BELGIAN_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        category_id="prepared_meals",
        category_name="Prepared Meals",
        is_eligible=True,
        keywords=("sandwich", "salade", "pizza"),
        description="Ready-to-eat meals",
    ),
    CategoryRule(
        category_id="alcohol",
        category_name="All Alcohol",
        is_eligible=False,
        keywords=("beer", "wine", "alcohol"),
        description="All alcoholic beverages prohibited",
    ),
)

_COUNTRY_RULES = {
    "FR": CountryRules(
        country_code="FR",
        country_name="France",
        default_daily_limit=Decimal("25.00"),
        default_category_rules=FRENCH_CATEGORY_RULES,
        default_time_restrictions=STANDARD_MEAL_WINDOWS,
        regulatory_framework="French Labour Code Article L3262-1",
        requires_employee_validation=True,
    ),
    "BE": CountryRules(
        country_code="BE",
        country_name="Belgium",
        default_daily_limit=Decimal("8.00"),
        default_category_rules=BELGIAN_CATEGORY_RULES,
        default_time_restrictions=STANDARD_MEAL_WINDOWS,
        regulatory_framework="Belgian Social Security Code",
        requires_employee_validation=True,
    ),
}

# Countries whose regulations tolerate alcohol inside a meal menu
_ALCOHOL_IN_COMBOS_ALLOWED = frozenset({"FR"})


def default_country_rules(country_code: str) -> CountryRules:
    return _COUNTRY_RULES.get((country_code or "").upper(), _COUNTRY_RULES[DEFAULT_COUNTRY])


def default_merchant_rules(merchant_id: str, country: CountryRules, merchant_name: str = "") -> MerchantRules:
    """Merchant rules derived from a country's defaults"""
    return MerchantRules(
        merchant_id=merchant_id,
        merchant_name=merchant_name,
        country_code=country.country_code,
        daily_limit=country.default_daily_limit,
        category_rules=country.default_category_rules,
        allow_alcohol_in_combos=country.country_code in _ALCOHOL_IN_COMBOS_ALLOWED,
        time_restrictions=country.default_time_restrictions,
        allowed_days=country.default_allowed_days,
        status=RulesStatus.DEFAULT,
    )


def fallback_merchant_rules(merchant_id: str) -> MerchantRules:
    """Conservative rules used when the rules store cannot be read"""
    return MerchantRules(
        merchant_id=merchant_id,
        country_code=DEFAULT_COUNTRY,
        daily_limit=Decimal("25.00"),
        category_rules=FRENCH_CATEGORY_RULES,
        allow_alcohol_in_combos=False,
        status=RulesStatus.FALLBACK,
    )
