"""
Tests for locale-bounded combination generation and strength tiers.
"""
import pytest

from audit_engine.classifier.patterns import IntentType
from audit_engine.classifier.service import PatternClassifier
from audit_engine.config_loader import ComboConfig
from audit_engine.exceptions import CrossLocaleComboError
from audit_engine.ruleset.merger import builtin_ruleset, merge_ruleset
from audit_engine.ruleset.models import Dimension, RulesetContext, Scope
from audit_engine.tokens.combos import ComboGenerator, assign_tier, ensure_single_locale, validate_combos
from audit_engine.tokens.models import LocaleTokenBag, Token
from audit_engine.tokens.tokenizer import Tokenizer
from tests import make_record


def token(text, locale="en-US", field="title"):
    return Token(text=text, source_field=field, locale=locale)


@pytest.fixture
def ruleset():
    return builtin_ruleset(RulesetContext())


@pytest.fixture
def generator(ruleset):
    return ComboGenerator(PatternClassifier(ruleset), ruleset)


class TestStrength:
    def test_relevant_learning_combo_is_tier1(self, generator):
        combo = generator.build([token("learn"), token("spanish")])

        # 45 + 15 relevance, 12 intent bonus, 10 learning hook
        assert combo.strength_score == 82.0
        assert combo.tier == "tier1"
        assert combo.intent_type == IntentType.INFORMATIONAL
        assert combo.category == "learning"
        assert combo.hook_categories == ("learning_educational",)

    def test_unclassified_combo_is_tier3(self, generator):
        combo = generator.build([token("self"), token("care")])

        assert combo.strength_score == 30.0
        assert combo.tier == "tier3"
        assert combo.category == "noise"

    def test_strength_capped_at_100(self, generator):
        combo = generator.build([token("learn"), token("language"), token("fitness")])

        assert combo.strength_score == 100.0

    def test_tier_thresholds_follow_ruleset(self):
        context = RulesetContext(vertical="education")
        ruleset = merge_ruleset(context, [
            make_record(1, Scope.VERTICAL, Dimension.RULE_THRESHOLD, "combo.tier1", 90.0,
                        scope_key="education"),
        ])
        generator = ComboGenerator(PatternClassifier(ruleset), ruleset)

        assert generator.build([token("learn"), token("spanish")]).tier == "tier2"

    def test_assign_tier_boundaries(self):
        assert assign_tier(80.0, 80.0, 50.0) == "tier1"
        assert assign_tier(50.0, 80.0, 50.0) == "tier2"
        assert assign_tier(49.9, 80.0, 50.0) == "tier3"


class TestLocaleBoundaries:
    def test_mixed_locale_build_rejected(self, generator):
        with pytest.raises(CrossLocaleComboError) as exc_info:
            generator.build([token("self"), token("diario", locale="es-US")])

        assert exc_info.value.locales == ("en-US", "es-US")

    def test_ensure_single_locale(self):
        assert ensure_single_locale([token("a"), token("b")]) == "en-US"
        with pytest.raises(CrossLocaleComboError):
            ensure_single_locale([])

    def test_generate_rejects_foreign_token_in_bag(self, generator):
        bag = LocaleTokenBag(locale="en-US", tokens=(token("self"), token("diario", locale="es-US")))

        with pytest.raises(CrossLocaleComboError):
            generator.generate(bag)

    def test_validate_combos_detects_foreign_member(self, generator):
        combo = generator.build([token("self"), token("diario")])
        tokens = [token("self"), token("diario", locale="es-US")]

        with pytest.raises(CrossLocaleComboError) as exc_info:
            validate_combos([combo], tokens)

        assert exc_info.value.locales == ("en-US", "es-US")

    def test_locales_combine_independently(self, ruleset, generator):
        tokenizer = Tokenizer(ruleset)
        en = tokenizer.tokenize_locale("en-US", {"title": "Self Care"})
        es = tokenizer.tokenize_locale("es-US", {"title": "Diario Rutina"})

        en_combos = generator.generate(en)
        es_combos = generator.generate(es)

        assert [c.text for c in en_combos] == ["self care"]
        assert [c.text for c in es_combos] == ["diario rutina"]
        validate_combos(en_combos + es_combos, en.tokens + es.tokens)


class TestGenerate:
    def test_contiguous_ngrams_from_source_fields(self, ruleset, generator):
        bag = Tokenizer(ruleset).tokenize_locale("en-US", {
            "title": "Learn Spanish Daily Lessons",
            "description": "Extra words",
        })

        combos = generator.generate(bag)

        assert [c.text for c in combos] == [
            "learn spanish", "spanish daily", "daily lessons",
            "learn spanish daily", "spanish daily lessons",
        ]

    def test_combo_cap(self, ruleset):
        generator = ComboGenerator(PatternClassifier(ruleset), ruleset, ComboConfig(max_combos_per_locale=2))
        bag = Tokenizer(ruleset).tokenize_locale("en-US", {"title": "Learn Spanish Daily Lessons"})

        assert len(generator.generate(bag)) == 2

    def test_single_token_produces_nothing(self, ruleset, generator):
        bag = Tokenizer(ruleset).tokenize_locale("en-US", {"title": "Budget"})

        assert generator.generate(bag) == ()
