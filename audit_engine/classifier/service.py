#!/usr/bin/env python3
"""
Pattern Classifier - Intent, relevance and hook classification.

Intent patterns are tried in (priority desc, ordinal asc, pattern_id asc)
order and the first match wins. Unmatched text is unclassified, never an
error. A classifier is bound to one MergedRuleSet and memoizes per text, so
classification is a pure function of (text, ruleset version).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from audit_engine.classifier.patterns import (
    IntentPattern,
    IntentType,
    MatchType,
    combo_category,
    ensure_safe_pattern,
    matches,
)
from audit_engine.ruleset.models import Dimension, MergedRuleSet

logger = logging.getLogger(__name__)

DEFAULT_RELEVANCE = 1


@dataclass(frozen=True)
class Classification:
    text: str
    intent_type: Optional[IntentType] = None
    pattern_id: Optional[str] = None
    weight: float = 0.0
    priority: Optional[int] = None
    provenance: Optional[str] = None
    relevance_level: int = DEFAULT_RELEVANCE
    hook_categories: Tuple[str, ...] = ()

    @property
    def category(self) -> str:
        return combo_category(self.intent_type)

    @property
    def is_classified(self) -> bool:
        return self.intent_type is not None


@dataclass(frozen=True)
class HookCategory:
    category: str
    phrases: Tuple[str, ...]
    multiplier: float = 1.0
    provenance: str = "base"


@dataclass(frozen=True)
class IntentCoverage:
    counts: Dict[str, int] = field(default_factory=dict)
    total: int = 0
    coverage_score: float = 0.0
    dominant_intent: Optional[IntentType] = None


def extract_intent_patterns(ruleset: MergedRuleSet) -> List[IntentPattern]:
    """
    Build the sorted intent pattern list from a merged ruleset.

    Raises:
        UnsafePatternError: a resolved pattern is unsafe to match
    """
    patterns = []
    for resolved in ruleset.items(Dimension.INTENT_PATTERN):
        if not isinstance(resolved.value, dict):
            logger.warning(f"Intent pattern '{resolved.key}' has no pattern definition, skipping")
            continue
        pattern = IntentPattern.from_value(
            resolved.key,
            resolved.value,
            weight_multiplier=resolved.multiplier,
            priority=resolved.priority,
            provenance=resolved.provenance.value,
            ordinal=resolved.ordinal,
        )
        if not pattern.active:
            continue
        ensure_safe_pattern(pattern.pattern, pattern.match_type)
        patterns.append(pattern)
    return sorted(patterns, key=lambda p: p.sort_key)


def extract_hook_categories(ruleset: MergedRuleSet) -> List[HookCategory]:
    categories = []
    for resolved in ruleset.items(Dimension.HOOK_PATTERN):
        value = resolved.value
        phrases = value.get("phrases", []) if isinstance(value, dict) else (value or [])
        phrases = tuple(p.strip() for p in phrases if isinstance(p, str) and p.strip())
        if not phrases:
            continue
        for phrase in phrases:
            ensure_safe_pattern(phrase, MatchType.CONTAINS)
        categories.append(HookCategory(
            category=resolved.key,
            phrases=phrases,
            multiplier=resolved.multiplier,
            provenance=resolved.provenance.value,
        ))
    return sorted(categories, key=lambda c: c.category)


class PatternClassifier:
    """Classifies tokens and phrases against one merged ruleset."""

    def __init__(self, ruleset: MergedRuleSet):
        self.ruleset_version = ruleset.version_hash
        self.patterns = extract_intent_patterns(ruleset)
        self.hook_categories = extract_hook_categories(ruleset)
        self._hook_patterns = [
            (hook, [
                IntentPattern(
                    pattern_id=f"{hook.category}:{phrase}",
                    pattern=phrase,
                    match_type=MatchType.CONTAINS,
                    intent_type=IntentType.INFORMATIONAL,
                    word_boundary=True,
                )
                for phrase in hook.phrases
            ])
            for hook in self.hook_categories
        ]
        self._relevance: Dict[str, int] = {
            resolved.key.lower(): int(resolved.value)
            for resolved in ruleset.items(Dimension.TOKEN_RELEVANCE)
            if resolved.value is not None
        }
        self._memo: Dict[str, Classification] = {}
        logger.debug(
            f"Classifier ready for ruleset {self.ruleset_version[:12]}: "
            f"{len(self.patterns)} intent patterns, {len(self.hook_categories)} hook categories"
        )

    def match_intent(self, text: str) -> Optional[IntentPattern]:
        for pattern in self.patterns:
            if matches(text, pattern):
                return pattern
        return None

    def relevance(self, text: str) -> int:
        """Relevance level 0-3; phrases take the highest level among their words."""
        normalized = text.strip().lower()
        if normalized in self._relevance:
            return self._relevance[normalized]
        words = normalized.split()
        if len(words) > 1:
            return max(self._relevance.get(w, DEFAULT_RELEVANCE) for w in words)
        return DEFAULT_RELEVANCE

    def match_hooks(self, text: str) -> Tuple[str, ...]:
        return tuple(
            hook.category
            for hook, patterns in self._hook_patterns
            if any(matches(text, p) for p in patterns)
        )

    def hook_multiplier(self, category: str) -> float:
        for hook in self.hook_categories:
            if hook.category == category:
                return hook.multiplier
        return 1.0

    def classify(self, text: str) -> Classification:
        cached = self._memo.get(text)
        if cached is not None:
            return cached
        pattern = self.match_intent(text)
        result = Classification(
            text=text,
            intent_type=pattern.intent_type if pattern else None,
            pattern_id=pattern.pattern_id if pattern else None,
            weight=pattern.weight if pattern else 0.0,
            priority=pattern.priority if pattern else None,
            provenance=pattern.provenance if pattern else None,
            relevance_level=self.relevance(text),
            hook_categories=self.match_hooks(text),
        )
        self._memo[text] = result
        return result

    def annotate(self, token):
        """Copy of a Token with relevance and intent filled in."""
        result = self.classify(token.text)
        return token.model_copy(update={
            "relevance_level": result.relevance_level,
            "intent_type": result.intent_type,
        })

    def annotate_bag(self, bag):
        return bag.model_copy(update={"tokens": tuple(self.annotate(t) for t in bag.tokens)})

    def intent_coverage(self, texts: Iterable[str]) -> IntentCoverage:
        counts: Dict[str, int] = {}
        total = 0
        for text in texts:
            total += 1
            intent = self.classify(text).intent_type
            if intent is not None:
                counts[intent.value] = counts.get(intent.value, 0) + 1
        dominant = None
        if counts:
            dominant = IntentType(sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0][0])
        return IntentCoverage(
            counts=counts,
            total=total,
            coverage_score=len(counts) / len(IntentType) * 100.0,
            dominant_intent=dominant,
        )


def classify(text: str, ruleset: MergedRuleSet) -> Classification:
    """One-off classification; prefer a PatternClassifier for repeated calls."""
    return PatternClassifier(ruleset).classify(text)
