from packages.common.schemas.rules import CategoryRule
from packages.domain.eligibility.categories import ALCOHOL_PROHIBITED, PROHIBITED
from packages.domain.eligibility.rule_engine import RuleEngine
from packages.domain.eligibility.schemas import UNDECIDED_REASON
from tests.support import french_rules, make_item


engine = RuleEngine()


class TestProhibitedKeywords:

    def test_wine_is_prohibited_with_full_confidence(self):
        item = make_item("W1", "Red Wine 750ml", category="Beverages")

        result = engine.evaluate(item, french_rules())

        assert result.is_definitive is True
        assert result.is_eligible is False
        assert result.confidence == 1.0
        assert result.reason == "Contains prohibited keyword: wine"
        assert result.category == PROHIBITED

    def test_keyword_in_description_counts(self):
        item = make_item("T1", "Pack Soirée", category="Misc", description="Includes cigarettes")

        result = engine.evaluate(item, french_rules())

        assert result.is_definitive is True
        assert "cigarette" in result.reason

    def test_keywords_match_whole_words_only(self):
        item = make_item("G1", "Original Ginger Shot", category="Juices")

        result = engine.evaluate(item, french_rules(category_rules=()))

        assert result.is_definitive is False
        assert result.reason == UNDECIDED_REASON

    def test_prohibited_keyword_beats_missing_merchant_rules(self):
        item = make_item("V1", "Vodka Premium", category="Spirits")

        result = engine.evaluate(item, french_rules(category_rules=()))

        assert result.is_eligible is False
        assert result.category == PROHIBITED


class TestCategoryRules:

    def test_declared_category_matches_rule_name(self):
        item = make_item("F1", "Formule Déjeuner", category="menu with alcohol")

        result = engine.evaluate(item, french_rules())

        assert result.is_definitive is True
        assert result.is_eligible is True
        assert result.confidence == 0.95
        assert result.reason == "Eligible Menu with Alcohol"
        assert result.rule_name == "Menu with Alcohol"

    def test_keyword_in_name_matches_rule(self):
        item = make_item("S1", "Sandwich Jambon Beurre", category="Snacks")

        result = engine.evaluate(item, french_rules())

        assert result.is_eligible is True
        assert result.category == "Prepared Meals"

    def test_ineligible_rule_reason(self):
        item = make_item("L1", "Frais de livraison", category="Services")

        result = engine.evaluate(item, french_rules())

        assert result.is_eligible is False
        assert result.reason == "Not eligible: Delivery Fees"

    def test_excluded_keyword_suppresses_rule(self):
        rule = CategoryRule(
            category_id="salads",
            category_name="Salads",
            is_eligible=True,
            keywords=("salade",),
            excluded_keywords=("kit",),
        )
        rules = french_rules(category_rules=(rule,))

        matched = engine.evaluate(make_item("S2", "Salade Niçoise", category="Fresh"), rules)
        excluded = engine.evaluate(make_item("S3", "Salade Kit à composer", category="Fresh"), rules)

        assert matched.is_definitive is True
        assert excluded.is_definitive is False


class TestAlcoholPolicy:

    def test_alcohol_flag_refused_when_merchant_disallows(self):
        item = make_item("C1", "Cocktail Maison", category="Drinks", contains_alcohol=True)

        result = engine.evaluate(item, french_rules(category_rules=(), allow_alcohol_in_combos=False))

        assert result.is_eligible is False
        assert result.category == ALCOHOL_PROHIBITED
        assert result.reason == "Alcohol not allowed for this merchant type"

    def test_alcohol_flag_undecided_when_merchant_allows(self):
        item = make_item("C2", "Cocktail Maison", category="Drinks", contains_alcohol=True)

        result = engine.evaluate(item, french_rules(category_rules=(), allow_alcohol_in_combos=True))

        assert result.is_definitive is False


def test_unknown_item_is_undecided_with_zero_confidence():
    item = make_item("P1", "Poke Bowl Saumon", category="Bowls")

    result = engine.evaluate(item, french_rules())

    assert result.is_definitive is False
    assert result.confidence == 0.0
