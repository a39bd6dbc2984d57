"""Cross-locale keyword fusion and character-budget advisories."""
import logging
from typing import Dict, List, Mapping, Sequence, Tuple

from audit_engine.tokens.models import Advisory, Combo, FusedKeyword, LocaleTokenBag

logger = logging.getLogger(__name__)

BUDGET_WASTE = "possible_character_budget_waste"


def fuse(text: str, locale_scores: Mapping[str, float]) -> FusedKeyword:
    """
    Fused score is the maximum over locales, never an average or sum.

    Ties go to the lexicographically first locale.
    """
    if not locale_scores:
        raise ValueError(f"No locale scores to fuse for '{text}'")
    best_locale = min(locale_scores, key=lambda loc: (-locale_scores[loc], loc))
    return FusedKeyword(
        text=text,
        score=locale_scores[best_locale],
        best_locale=best_locale,
        locale_scores=dict(sorted(locale_scores.items())),
    )


def fuse_combos(combos_by_locale: Mapping[str, Sequence[Combo]]) -> Tuple[FusedKeyword, ...]:
    scores: Dict[str, Dict[str, float]] = {}
    for locale, combos in combos_by_locale.items():
        for combo in combos:
            current = scores.setdefault(combo.text, {}).get(locale)
            if current is None or combo.strength_score > current:
                scores[combo.text][locale] = combo.strength_score
    fused = [fuse(text, per_locale) for text, per_locale in scores.items()]
    return tuple(sorted(fused, key=lambda f: (-f.score, f.text)))


def detect_budget_waste(
    bags: Mapping[str, LocaleTokenBag],
    budget_fields: Sequence[str],
) -> Tuple[Advisory, ...]:
    """Advise when a keyword fills budget fields in more than one locale."""
    seen_in: Dict[str, List[str]] = {}
    fields_of: Dict[str, set] = {}
    for locale in sorted(bags):
        bag = bags[locale]
        for field in budget_fields:
            for keyword in bag.field_keywords(field):
                locales = seen_in.setdefault(keyword, [])
                if locale not in locales:
                    locales.append(locale)
                fields_of.setdefault(keyword, set()).add(field)

    advisories = []
    for keyword in sorted(seen_in):
        locales = seen_in[keyword]
        if len(locales) < 2:
            continue
        advisories.append(Advisory(
            code=BUDGET_WASTE,
            message=(
                f"'{keyword}' appears in {', '.join(locales)}: possible character-budget waste, "
                f"consider a different keyword in one locale"
            ),
            keyword=keyword,
            locales=tuple(locales),
            source_fields=tuple(sorted(fields_of[keyword])),
        ))
    if advisories:
        logger.debug(f"{len(advisories)} cross-locale duplicate keywords in budget fields")
    return tuple(advisories)
