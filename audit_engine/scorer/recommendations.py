"""Ranked, deduplicated recommendations from failing and borderline formula results."""
import logging
from typing import Dict, Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict

from audit_engine.scorer.models import FormulaResult
from audit_engine.utils import clamp, round_score

logger = logging.getLogger(__name__)

CRITICAL = "critical"
ADVISORY = "advisory"


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    formula_id: str
    category: str
    priority: float
    severity: str
    shortfall: float
    message: str
    locales: Tuple[str, ...] = ()
    score: float
    threshold: float


def shortfall_severity(result: FormulaResult) -> float:
    """
    0-1 distance below the borderline ceiling (threshold + margin).

    A failing score always has a severity above that of any borderline score.
    """
    ceiling = result.threshold + result.borderline_margin
    return clamp((ceiling - result.score) / 100.0, 0.0, 1.0)


def build_recommendations(results: Iterable[FormulaResult], precision: int = 4) -> Tuple[Recommendation, ...]:
    """
    One recommendation per formula id across locales.

    priority = formula weight * shortfall severity; the highest-priority
    instance supplies the message, locales are unioned. Sorted by priority
    descending, then formula id.
    """
    best: Dict[str, Recommendation] = {}
    locales: Dict[str, set] = {}
    for result in results:
        if not result.needs_attention:
            continue
        severity = shortfall_severity(result)
        candidate = Recommendation(
            formula_id=result.formula_id,
            category=result.dimension,
            priority=round_score(result.weight * severity, precision),
            severity=ADVISORY if result.passed else CRITICAL,
            shortfall=round_score(severity, precision),
            message=result.message,
            locales=(result.locale,),
            score=result.score,
            threshold=result.threshold,
        )
        locales.setdefault(result.formula_id, set()).add(result.locale)
        current = best.get(result.formula_id)
        if (
            current is None
            or candidate.priority > current.priority
            or (candidate.priority == current.priority and candidate.locales[0] < current.locales[0])
        ):
            best[result.formula_id] = candidate

    ranked: List[Recommendation] = [
        rec.model_copy(update={"locales": tuple(sorted(locales[formula_id]))})
        for formula_id, rec in best.items()
    ]
    ranked.sort(key=lambda r: (-r.priority, r.formula_id))
    logger.debug(f"Built {len(ranked)} recommendations")
    return tuple(ranked)
