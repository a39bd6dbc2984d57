"""Shape checks applied to overrides before they are stored or merged."""
import logging
from typing import Any, Mapping

from audit_engine.classifier.patterns import IntentType, MatchType, ensure_safe_pattern
from audit_engine.exceptions import InvalidOverrideError
from audit_engine.ruleset.models import Dimension, OverrideDraft

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_relevance(draft: OverrideDraft) -> None:
    if draft.value is None:
        return
    if not isinstance(draft.value, int) or isinstance(draft.value, bool) or not 0 <= draft.value <= 3:
        raise InvalidOverrideError(
            f"token_relevance '{draft.key}' must be an integer 0-3, got {draft.value!r}"
        )


def _check_intent_pattern(draft: OverrideDraft) -> None:
    value = draft.value
    if value is None:
        return
    if not isinstance(value, Mapping):
        raise InvalidOverrideError(f"intent_pattern '{draft.key}' value must be an object")
    try:
        match_type = MatchType(value.get("match_type", MatchType.CONTAINS.value))
        IntentType(value.get("intent_type"))
    except ValueError as e:
        raise InvalidOverrideError(f"intent_pattern '{draft.key}': {e}") from e
    if "weight" in value and not _is_number(value["weight"]):
        raise InvalidOverrideError(f"intent_pattern '{draft.key}' weight must be numeric")
    if "priority" in value and not isinstance(value["priority"], int):
        raise InvalidOverrideError(f"intent_pattern '{draft.key}' priority must be an integer")
    ensure_safe_pattern(str(value.get("pattern", draft.key)), match_type)


def _check_stopword(draft: OverrideDraft) -> None:
    if draft.value is not None and not isinstance(draft.value, bool):
        raise InvalidOverrideError(f"stopword '{draft.key}' value must be true or false")


def _check_hook_pattern(draft: OverrideDraft) -> None:
    value = draft.value
    if value is None:
        return
    phrases = value.get("phrases") if isinstance(value, Mapping) else value
    if not isinstance(phrases, (list, tuple)) or not phrases or not all(
        isinstance(p, str) and p.strip() for p in phrases
    ):
        raise InvalidOverrideError(
            f"hook_pattern '{draft.key}' must be a list of phrases or an object with 'phrases'"
        )
    for phrase in phrases:
        ensure_safe_pattern(phrase, MatchType.CONTAINS)


def _check_numeric(draft: OverrideDraft) -> None:
    if draft.value is not None and not _is_number(draft.value):
        raise InvalidOverrideError(
            f"{draft.dimension.value} '{draft.key}' value must be numeric, got {draft.value!r}"
        )


def _is_positive(value: Any) -> bool:
    return _is_number(value) and value > 0


def _is_non_negative(value: Any) -> bool:
    return _is_number(value) and value >= 0


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_ratio(value: Any) -> bool:
    return _is_number(value) and 0 <= value <= 1


def _is_relevance_level(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 3


def _is_score_bands(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and bool(value) and all(
        _is_number(v) and 0 <= v <= 100 for v in value
    )


# Built-in formula params by name; target_ratio is a divisor
FORMULA_PARAM_RULES = {
    "target_ratio": (_is_positive, "a positive number"),
    "ceiling": (_is_non_negative, "a non-negative number"),
    "min_relevance": (_is_relevance_level, "an integer 0-3"),
    "per_keyword_points": (_is_non_negative, "a non-negative number"),
    "max_base": (_is_non_negative, "a non-negative number"),
    "relevance_bonus": (_is_non_negative, "a non-negative number"),
    "target_count": (_is_positive_int, "a positive integer"),
    "band_scores": (_is_score_bands, "a non-empty list of scores 0-100"),
    "top_k": (_is_positive_int, "a positive integer"),
    "target_categories": (_is_positive_int, "a positive integer"),
    "moderate_noise_ratio": (_is_ratio, "a ratio between 0 and 1"),
    "high_noise_ratio": (_is_ratio, "a ratio between 0 and 1"),
    "moderate_noise_penalty": (_is_non_negative, "a non-negative number"),
    "high_noise_penalty": (_is_non_negative, "a non-negative number"),
}


def _check_formula_param(draft: OverrideDraft) -> None:
    formula_id, _, param = draft.key.partition(".")
    if not formula_id or not param:
        raise InvalidOverrideError(f"formula_param key '{draft.key}' must be '<formula>.<param>'")
    if draft.value is None or param not in FORMULA_PARAM_RULES:
        return
    check, expected = FORMULA_PARAM_RULES[param]
    if not check(draft.value):
        raise InvalidOverrideError(
            f"formula_param '{draft.key}' must be {expected}, got {draft.value!r}"
        )


def _check_template(draft: OverrideDraft) -> None:
    if draft.value is not None and not isinstance(draft.value, str):
        raise InvalidOverrideError(f"recommendation_template '{draft.key}' must be a string")


_VALUE_CHECKS = {
    Dimension.TOKEN_RELEVANCE: _check_relevance,
    Dimension.INTENT_PATTERN: _check_intent_pattern,
    Dimension.STOPWORD: _check_stopword,
    Dimension.HOOK_PATTERN: _check_hook_pattern,
    Dimension.KPI_WEIGHT: _check_numeric,
    Dimension.FORMULA_PARAM: _check_formula_param,
    Dimension.RULE_THRESHOLD: _check_numeric,
    Dimension.RECOMMENDATION_TEMPLATE: _check_template,
}


def validate_override(draft: OverrideDraft) -> OverrideDraft:
    """
    Validate an override's value shape for its dimension.

    Raises:
        InvalidOverrideError: value or multiplier has the wrong shape
        UnsafePatternError: a pattern would be unsafe to match with
    """
    if draft.value is None and draft.weight_multiplier is None and draft.priority is None:
        raise InvalidOverrideError(
            f"override ({draft.dimension.value}, '{draft.key}') sets no value, multiplier or priority"
        )
    if draft.weight_multiplier is not None and (
        not _is_number(draft.weight_multiplier) or draft.weight_multiplier <= 0
    ):
        raise InvalidOverrideError(
            f"weight_multiplier for '{draft.key}' must be a positive number"
        )
    _VALUE_CHECKS[draft.dimension](draft)
    return draft
