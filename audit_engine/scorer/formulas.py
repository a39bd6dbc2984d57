#!/usr/bin/env python3
"""
Formula Registry - Built-in metadata scoring formulas.

Every formula is a pure function of (ScoringInputs, params) returning a
0-100 score and the inputs it used. Weights, params, thresholds and message
templates are defaults; the merged ruleset may override each of them.
"""

from typing import Any, Dict, Mapping

from audit_engine.classifier.patterns import IntentType
from audit_engine.scorer.models import FormulaDefinition, FormulaOutcome, ScoringInputs
from audit_engine.utils import clamp

INTENT_TYPE_COUNT = len(IntentType)


def _character_usage(used: int, limit: int, params: Mapping[str, Any]) -> float:
    if limit <= 0 or used > limit:
        return 0.0
    ratio = used / limit
    return min(float(params["ceiling"]), ratio / float(params["target_ratio"]) * 100.0)


def title_character_usage(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    title = inputs.require("title_character_usage", "title").strip()
    used = len(title)
    return FormulaOutcome(
        score=_character_usage(used, inputs.title_char_limit, params),
        inputs_used={"used": used, "limit": inputs.title_char_limit},
    )


def subtitle_character_usage(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    subtitle = inputs.require("subtitle_character_usage", "subtitle").strip()
    used = len(subtitle)
    return FormulaOutcome(
        score=_character_usage(used, inputs.subtitle_char_limit, params),
        inputs_used={"used": used, "limit": inputs.subtitle_char_limit},
    )


def title_unique_keywords(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    """
    Unique qualifying title keywords, boosted by their average relevance.

    score = min(max_base, count * per_keyword_points) + avg_relevance * relevance_bonus
    """
    inputs.require("title_unique_keywords", "title")
    min_relevance = int(params["min_relevance"])
    qualifying = [k for k in inputs.title_keywords if inputs.relevance(k) >= min_relevance]
    count = len(qualifying)
    avg_relevance = sum(inputs.relevance(k) for k in qualifying) / count if count else 0.0
    base = min(float(params["max_base"]), count * float(params["per_keyword_points"]))
    score = min(100.0, base + avg_relevance * float(params["relevance_bonus"]))
    return FormulaOutcome(
        score=score,
        inputs_used={
            "unique_keywords": count,
            "keywords": ", ".join(qualifying),
            "avg_relevance": round(avg_relevance, 2),
            "target_count": int(params["target_count"]),
        },
    )


def subtitle_incremental_value(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    inputs.require("subtitle_incremental_value", "title")
    inputs.require("subtitle_incremental_value", "subtitle")
    min_relevance = int(params["min_relevance"])
    title_set = set(inputs.title_keywords)
    new_keywords = [
        k for k in inputs.subtitle_keywords
        if k not in title_set and inputs.relevance(k) >= min_relevance
    ]
    bands = list(params["band_scores"])
    score = float(bands[min(len(new_keywords), len(bands) - 1)])
    return FormulaOutcome(
        score=score,
        inputs_used={"new_keywords": len(new_keywords), "keywords": ", ".join(new_keywords)},
    )


def combo_coverage(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    """Mean strength of the strongest top_k combinations."""
    combos = inputs.require("combo_coverage", "combos")
    top_k = max(1, int(params["top_k"]))
    strongest = sorted(combos, key=lambda c: (-c.strength_score, c.text))[:top_k]
    if not strongest:
        return FormulaOutcome(score=0.0, inputs_used={"combo_count": 0, "top_combos": ""})
    mean_strength = sum(c.strength_score for c in strongest) / len(strongest)
    return FormulaOutcome(
        score=mean_strength,
        inputs_used={
            "combo_count": len(combos),
            "top_combos": ", ".join(c.text for c in strongest),
        },
    )


def filler_ratio(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    """Penalize stopword-heavy title and subtitle text by noise ratio band."""
    inputs.require("filler_ratio", "title")
    raw = inputs.raw_token_count
    noise = inputs.stopword_count / raw if raw else 0.0
    penalty = 0.0
    if noise > float(params["high_noise_ratio"]):
        penalty = float(params["high_noise_penalty"])
    elif noise > float(params["moderate_noise_ratio"]):
        penalty = float(params["moderate_noise_penalty"])
    return FormulaOutcome(
        score=max(0.0, 100.0 - penalty),
        inputs_used={"noise_ratio": round(noise, 4), "filler_tokens": inputs.stopword_count},
    )


def intent_coverage(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    tokens = inputs.require("intent_coverage", "tokens")
    found = {t.intent_type for t in tokens if t.intent_type is not None}
    for combo in inputs.combos or ():
        if combo.intent_type is not None:
            found.add(combo.intent_type)
    return FormulaOutcome(
        score=len(found) / INTENT_TYPE_COUNT * 100.0,
        inputs_used={
            "intent_types": ", ".join(sorted(i.value for i in found)),
            "distinct_intents": len(found),
        },
    )


def description_hook_strength(inputs: ScoringInputs, params: Mapping[str, Any]) -> FormulaOutcome:
    inputs.require("description_hook_strength", "description")
    target = max(1, int(params["target_categories"]))
    matched = inputs.description_hook_categories
    return FormulaOutcome(
        score=clamp(len(matched) / target * 100.0, 0.0, 100.0),
        inputs_used={"hook_categories": ", ".join(matched), "matched_hooks": len(matched)},
    )


FORMULA_REGISTRY: Dict[str, FormulaDefinition] = {
    definition.id: definition
    for definition in (
        FormulaDefinition(
            id="title_character_usage",
            label="Title character usage",
            dimension="title",
            weight=0.15,
            required_inputs=("title",),
            compute=title_character_usage,
            params={"target_ratio": 0.9, "ceiling": 100.0},
            fail_message=(
                "Title uses {used} of {limit} characters in {locale} ({score}/100). "
                "Fill the remaining space with keywords such as {examples}."
            ),
        ),
        FormulaDefinition(
            id="title_unique_keywords",
            label="Title keyword coverage",
            dimension="title",
            weight=0.2,
            required_inputs=("title",),
            compute=title_unique_keywords,
            params={
                "min_relevance": 1,
                "per_keyword_points": 20.0,
                "max_base": 80.0,
                "relevance_bonus": 10.0,
                "target_count": 3,
            },
            fail_message=(
                "Title has {unique_keywords} qualifying keywords in {locale}; aim for "
                "{target_count} or more, e.g. {examples}."
            ),
        ),
        FormulaDefinition(
            id="subtitle_character_usage",
            label="Subtitle character usage",
            dimension="subtitle",
            weight=0.1,
            required_inputs=("subtitle",),
            compute=subtitle_character_usage,
            params={"target_ratio": 0.9, "ceiling": 100.0},
            fail_message=(
                "Subtitle uses {used} of {limit} characters in {locale} ({score}/100). "
                "Add supporting keywords such as {examples}."
            ),
        ),
        FormulaDefinition(
            id="subtitle_incremental_value",
            label="Subtitle incremental value",
            dimension="subtitle",
            weight=0.15,
            required_inputs=("title", "subtitle"),
            compute=subtitle_incremental_value,
            params={"min_relevance": 1, "band_scores": [20.0, 50.0, 75.0, 95.0]},
            fail_message=(
                "Subtitle adds {new_keywords} new keywords over the title in {locale}. "
                "Avoid repeating title terms; try {examples}."
            ),
        ),
        FormulaDefinition(
            id="combo_coverage",
            label="Keyword combination strength",
            dimension="combos",
            weight=0.2,
            required_inputs=("combos",),
            compute=combo_coverage,
            params={"top_k": 5},
            pass_threshold=50.0,
            fail_message=(
                "Keyword combinations in {locale} are weak ({score}/100). "
                "Pair high-intent terms, e.g. {examples}."
            ),
        ),
        FormulaDefinition(
            id="filler_ratio",
            label="Filler words",
            dimension="title",
            weight=0.1,
            required_inputs=("title",),
            compute=filler_ratio,
            params={
                "moderate_noise_ratio": 0.3,
                "moderate_noise_penalty": 15.0,
                "high_noise_ratio": 0.5,
                "high_noise_penalty": 30.0,
            },
            pass_threshold=85.0,
            borderline_margin=5.0,
            fail_message=(
                "{filler_tokens} filler words take up title/subtitle space in {locale} "
                "(noise ratio {noise_ratio}). Replace them with keywords like {examples}."
            ),
        ),
        FormulaDefinition(
            id="intent_coverage",
            label="Search intent coverage",
            dimension="intent",
            weight=0.1,
            required_inputs=("tokens",),
            compute=intent_coverage,
            pass_threshold=50.0,
            fail_message=(
                "Metadata in {locale} covers {distinct_intents} of 4 search intents. "
                "Add intent terms such as {examples}."
            ),
        ),
        FormulaDefinition(
            id="description_hook_strength",
            label="Description hooks",
            dimension="description",
            weight=0.05,
            required_inputs=("description",),
            compute=description_hook_strength,
            params={"target_categories": 3},
            pass_threshold=60.0,
            fail_message=(
                "Description in {locale} hits {matched_hooks} hook categories. "
                "Open with benefits or proof points like {examples}."
            ),
        ),
    )
}
