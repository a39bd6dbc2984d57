"""Regression diff between two audit snapshots."""
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from audit_engine.audit.models import AuditSnapshot
from audit_engine.utils import round_score


class FormulaDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    formula_id: str
    locale: str
    before: Optional[float] = None
    after: Optional[float] = None
    delta: Optional[float] = None


class SnapshotDiff(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_delta: Optional[float] = None
    ruleset_changed: bool = False
    formula_deltas: Tuple[FormulaDelta, ...] = ()
    regressions: Tuple[FormulaDelta, ...] = ()
    added_recommendations: Tuple[str, ...] = ()
    removed_recommendations: Tuple[str, ...] = ()

    @property
    def has_regressions(self) -> bool:
        return bool(self.regressions)


def diff_snapshots(before: AuditSnapshot, after: AuditSnapshot, tolerance: float = 1.0) -> SnapshotDiff:
    """
    Compare two snapshots of the same app.

    A regression is a formula whose score dropped by more than tolerance.
    """
    old: Dict[Tuple[str, str], float] = {(r.formula_id, r.locale): r.score for r in before.formula_results}
    new: Dict[Tuple[str, str], float] = {(r.formula_id, r.locale): r.score for r in after.formula_results}

    deltas = []
    for key in sorted(set(old) | set(new)):
        a, b = old.get(key), new.get(key)
        delta = round_score(b - a) if a is not None and b is not None else None
        deltas.append(FormulaDelta(formula_id=key[0], locale=key[1], before=a, after=b, delta=delta))

    overall_delta = None
    if before.overall_score is not None and after.overall_score is not None:
        overall_delta = round_score(after.overall_score - before.overall_score)

    old_recs = {r.formula_id for r in before.recommendations}
    new_recs = {r.formula_id for r in after.recommendations}
    return SnapshotDiff(
        overall_delta=overall_delta,
        ruleset_changed=before.ruleset_version_hash != after.ruleset_version_hash,
        formula_deltas=tuple(deltas),
        regressions=tuple(d for d in deltas if d.delta is not None and d.delta < -tolerance),
        added_recommendations=tuple(sorted(new_recs - old_recs)),
        removed_recommendations=tuple(sorted(old_recs - new_recs)),
    )
