#!/usr/bin/env python3
"""
Built-in base ruleset.

These entries form the layer beneath every stored override. Removing all
non-base overrides collapses a merged ruleset back to exactly this layer.
Bump BUILTIN_RULESET_VERSION whenever an entry here changes so cached and
persisted version hashes move with it.
"""

from typing import Dict, List, Tuple

from audit_engine.ruleset.models import Dimension, OverrideDraft, Scope
from audit_engine.scorer.formulas import FORMULA_REGISTRY

BUILTIN_RULESET_VERSION = "2025.11.1"

# pattern_id -> (pattern, match_type, intent_type, weight, priority, word_boundary)
BUILTIN_INTENT_PATTERNS: Dict[str, Tuple[str, str, str, float, int, bool]] = {
    "learn": ("learn", "contains", "informational", 1.2, 100, True),
    "how_to": ("how to", "contains", "informational", 1.3, 110, False),
    "guide": ("guide", "contains", "informational", 1.1, 90, True),
    "tutorial": ("tutorial", "contains", "informational", 1.1, 90, True),
    "best": ("best", "contains", "commercial", 1.5, 120, True),
    "top": ("top", "contains", "commercial", 1.4, 115, True),
    "compare": ("compare", "contains", "commercial", 1.3, 110, True),
    "download": ("download", "contains", "transactional", 2.0, 150, True),
    "free": ("free", "contains", "transactional", 1.8, 140, True),
    "get": ("get", "contains", "transactional", 1.5, 130, True),
    "app": ("app", "contains", "navigational", 1.0, 50, True),
    "official": ("official", "contains", "navigational", 1.2, 60, True),
}

BUILTIN_HOOK_CATEGORIES: Dict[str, List[str]] = {
    "learning_educational": [
        "learn", "master", "study", "practice", "improve", "discover", "lessons", "course",
    ],
    "outcome_benefit": [
        "save money", "get results", "achieve", "boost", "transform", "reach your goals",
    ],
    "status_authority": [
        "award winning", "trusted by", "used by millions", "expert approved", "number one", "top rated",
    ],
    "ease_of_use": [
        "easy", "simple", "intuitive", "step by step", "beginner friendly", "no experience needed",
    ],
    "time_to_result": [
        "in minutes", "fast results", "instant", "quick", "within days", "in 30 days",
    ],
    "trust_safety": [
        "secure", "private", "safe", "verified", "encrypted", "guaranteed",
    ],
}

ENGLISH_STOPWORDS = (
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "into", "is",
    "it", "its", "of", "on", "or", "our", "that", "the", "this", "to", "with", "your",
    "you", "we", "all", "more", "most", "very", "just", "new",
)

LOCALE_STOPWORDS: Dict[str, Tuple[str, ...]] = {
    "es": ("el", "la", "los", "las", "de", "del", "y", "en", "para", "con", "por", "un", "una", "tu"),
    "fr": ("le", "la", "les", "de", "des", "du", "et", "en", "pour", "avec", "un", "une", "votre"),
    "de": ("der", "die", "das", "und", "mit", "für", "ein", "eine", "den", "dem", "zu", "dein"),
    "pt": ("o", "os", "as", "de", "do", "da", "e", "em", "para", "com", "um", "uma", "seu"),
}

# Tokens that carry strong category signal even without a pattern match
BUILTIN_TOKEN_RELEVANCE: Dict[str, int] = {
    "app": 0,
    "apps": 0,
    "best": 2,
    "free": 2,
    "learn": 3,
    "language": 3,
    "budget": 3,
    "fitness": 3,
    "workout": 3,
    "meditation": 3,
    "planner": 3,
    "tracker": 2,
    "daily": 2,
    "easy": 1,
}

BUILTIN_THRESHOLDS: Dict[str, float] = {
    "combo.tier1": 80.0,
    "combo.tier2": 50.0,
}


def _base(dimension: Dimension, key: str, value=None, weight_multiplier=None, priority=None) -> OverrideDraft:
    return OverrideDraft(
        scope=Scope.BASE,
        dimension=dimension,
        key=key,
        value=value,
        weight_multiplier=weight_multiplier,
        priority=priority,
    )


def _build_builtin_entries() -> Tuple[OverrideDraft, ...]:
    entries: List[OverrideDraft] = []

    for pattern_id, (pattern, match_type, intent_type, weight, priority, word_boundary) in BUILTIN_INTENT_PATTERNS.items():
        entries.append(_base(Dimension.INTENT_PATTERN, pattern_id, {
            "pattern": pattern,
            "match_type": match_type,
            "intent_type": intent_type,
            "weight": weight,
            "priority": priority,
            "case_sensitive": False,
            "word_boundary": word_boundary,
        }))

    for category, phrases in BUILTIN_HOOK_CATEGORIES.items():
        entries.append(_base(Dimension.HOOK_PATTERN, category, {"phrases": phrases}, weight_multiplier=1.0))

    for word in ENGLISH_STOPWORDS:
        entries.append(_base(Dimension.STOPWORD, word, True))
    for language, words in LOCALE_STOPWORDS.items():
        for word in words:
            entries.append(_base(Dimension.STOPWORD, f"{language}:{word}", True))

    for token, level in BUILTIN_TOKEN_RELEVANCE.items():
        entries.append(_base(Dimension.TOKEN_RELEVANCE, token, level))

    for key, threshold in BUILTIN_THRESHOLDS.items():
        entries.append(_base(Dimension.RULE_THRESHOLD, key, threshold))

    for formula in FORMULA_REGISTRY.values():
        entries.append(_base(Dimension.KPI_WEIGHT, formula.id, formula.weight))
        for param, value in formula.params.items():
            entries.append(_base(Dimension.FORMULA_PARAM, f"{formula.id}.{param}", value))
        entries.append(_base(Dimension.RULE_THRESHOLD, f"{formula.id}.pass_threshold", formula.pass_threshold))
        entries.append(_base(Dimension.RULE_THRESHOLD, f"{formula.id}.borderline_margin", formula.borderline_margin))
        entries.append(_base(Dimension.RECOMMENDATION_TEMPLATE, formula.id, formula.fail_message))

    return tuple(entries)


BUILTIN_ENTRIES: Tuple[OverrideDraft, ...] = _build_builtin_entries()
