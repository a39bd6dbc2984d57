#!/usr/bin/env python3
"""
Combination Generator - Locale-bounded n-gram combos with strength tiers.

strength = sum(relevance points of member tokens)
         + matched intent weight * intent_bonus_scale
         + hook_bonus * category multiplier, per matched hook category
capped at 100.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from audit_engine.classifier.service import PatternClassifier
from audit_engine.config_loader import ComboConfig
from audit_engine.exceptions import CrossLocaleComboError
from audit_engine.ruleset.models import MergedRuleSet
from audit_engine.tokens.models import Combo, LocaleTokenBag, Token
from audit_engine.utils import round_score

logger = logging.getLogger(__name__)

TIER1 = "tier1"
TIER2 = "tier2"
TIER3 = "tier3"


def ensure_single_locale(tokens: Sequence[Token]) -> str:
    """
    Return the shared locale of tokens.

    Raises:
        CrossLocaleComboError: tokens come from more than one locale
    """
    locales = {t.locale for t in tokens}
    if len(locales) != 1:
        raise CrossLocaleComboError(locales, [t.text for t in tokens])
    return next(iter(locales))


def assign_tier(strength: float, tier1: float, tier2: float) -> str:
    if strength >= tier1:
        return TIER1
    if strength >= tier2:
        return TIER2
    return TIER3


class ComboGenerator:
    """Generates and scores combinations for one ruleset."""

    def __init__(
        self,
        classifier: PatternClassifier,
        ruleset: MergedRuleSet,
        config: Optional[ComboConfig] = None,
    ):
        self.classifier = classifier
        self.config = config or ComboConfig()
        self.tier1 = ruleset.threshold("combo.tier1", 80.0)
        self.tier2 = ruleset.threshold("combo.tier2", 50.0)

    def _relevance_points(self, level: int) -> float:
        return float(self.config.relevance_points.get(level, 0.0))

    def build(self, tokens: Sequence[Token]) -> Combo:
        """
        Score an ordered token sequence as one combination.

        Raises:
            CrossLocaleComboError: tokens come from more than one locale
        """
        locale = ensure_single_locale(tokens)
        text = " ".join(t.text for t in tokens)
        classification = self.classifier.classify(text)

        strength = sum(self._relevance_points(self.classifier.relevance(t.text)) for t in tokens)
        strength += classification.weight * self.config.intent_bonus_scale
        for category in classification.hook_categories:
            strength += self.config.hook_bonus * self.classifier.hook_multiplier(category)
        strength = round_score(min(100.0, strength))

        return Combo(
            text=text,
            tokens=tuple(t.text for t in tokens),
            locale=locale,
            strength_score=strength,
            tier=assign_tier(strength, self.tier1, self.tier2),
            intent_type=classification.intent_type,
            category=classification.category,
            hook_categories=classification.hook_categories,
        )

    def generate(self, bag: LocaleTokenBag) -> Tuple[Combo, ...]:
        """Contiguous n-grams over one locale's source-field tokens."""
        for token in bag.tokens:
            if token.locale != bag.locale:
                raise CrossLocaleComboError([bag.locale, token.locale], [token.text])

        source = bag.tokens_from(self.config.source_fields)
        combos: List[Combo] = []
        seen = set()
        for n in range(self.config.min_n, self.config.max_n + 1):
            for start in range(0, len(source) - n + 1):
                window = source[start:start + n]
                text = " ".join(t.text for t in window)
                if text in seen:
                    continue
                seen.add(text)
                combos.append(self.build(window))
                if len(combos) >= self.config.max_combos_per_locale:
                    logger.debug(f"Combo cap {self.config.max_combos_per_locale} reached for {bag.locale}")
                    return tuple(combos)
        return tuple(combos)


def validate_combos(combos: Iterable[Combo], tokens: Iterable[Token]) -> None:
    """
    Check every combo's members exist in its own locale's token set.

    Raises:
        CrossLocaleComboError: a combo member only exists in another locale
    """
    by_locale = {}
    for token in tokens:
        by_locale.setdefault(token.locale, set()).add(token.text)
    for combo in combos:
        own = by_locale.get(combo.locale, set())
        for member in combo.tokens:
            if member in own:
                continue
            foreign = sorted(loc for loc, texts in by_locale.items() if member in texts)
            raise CrossLocaleComboError([combo.locale, *foreign], combo.tokens)
