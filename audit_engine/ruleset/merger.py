#!/usr/bin/env python3
"""
Ruleset Merger - Pure five-level override merge.

Layers are applied in increasing specificity on top of the built-in layer:

    builtin -> base -> vertical -> market -> client -> app

Each dimension has one merge kind for its value (replace or most-specific)
and may compose weight multipliers across layers. The merge performs no I/O;
callers load overrides and hand them in.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from audit_engine.config_loader import MergeConfig
from audit_engine.exceptions import ConfigConflictError
from audit_engine.ruleset.defaults import BUILTIN_ENTRIES, BUILTIN_RULESET_VERSION
from audit_engine.ruleset.models import (
    SCOPE_ORDER,
    Contributor,
    Dimension,
    MergedRuleSet,
    MergeKind,
    OverrideDraft,
    OverrideRecord,
    ResolvedValue,
    RulesetContext,
    Scope,
)
from audit_engine.utils import RulesetFingerprinter, clamp

logger = logging.getLogger(__name__)

# Value merge kind per dimension
DIMENSION_MERGE_KIND: Dict[Dimension, MergeKind] = {
    Dimension.TOKEN_RELEVANCE: MergeKind.REPLACE,
    Dimension.INTENT_PATTERN: MergeKind.REPLACE,
    Dimension.STOPWORD: MergeKind.REPLACE,
    Dimension.HOOK_PATTERN: MergeKind.REPLACE,
    Dimension.KPI_WEIGHT: MergeKind.REPLACE,
    Dimension.FORMULA_PARAM: MergeKind.REPLACE,
    Dimension.RULE_THRESHOLD: MergeKind.MOST_SPECIFIC,
    Dimension.RECOMMENDATION_TEMPLATE: MergeKind.REPLACE,
}

# Dimensions whose multipliers are ignored
NON_MULTIPLIABLE = frozenset({Dimension.RULE_THRESHOLD, Dimension.STOPWORD, Dimension.RECOMMENDATION_TEMPLATE})


@dataclass
class _Resolution:
    """Mutable accumulator for one (dimension, key) while layers are applied."""
    dimension: Dimension
    key: str
    ordinal: Tuple[int, int]
    value: object = None
    value_scope: Optional[Scope] = None
    multiplier: float = 1.0
    priority: Optional[int] = None
    provenance: Scope = Scope.BASE
    contributors: List[Contributor] = field(default_factory=list)


@dataclass(frozen=True)
class _LayerEntry:
    scope: Scope
    source_id: str
    ordinal: Tuple[int, int]
    draft: OverrideDraft


def _apply_replace(acc: _Resolution, entry: _LayerEntry) -> bool:
    if entry.draft.value is None:
        return False
    acc.value = entry.draft.value
    acc.value_scope = entry.scope
    return True


def _apply_most_specific(acc: _Resolution, entry: _LayerEntry) -> bool:
    if entry.draft.value is None:
        return False
    if acc.value_scope is not None and entry.scope.rank < acc.value_scope.rank:
        return False
    acc.value = entry.draft.value
    acc.value_scope = entry.scope
    return True


VALUE_MERGERS = {
    MergeKind.REPLACE: _apply_replace,
    MergeKind.MOST_SPECIFIC: _apply_most_specific,
}


def detect_conflicts(overrides: Iterable[OverrideRecord]) -> None:
    """
    Raise ConfigConflictError if two active overrides share an identity.

    Identities are checked in sorted order so the reported conflict is
    deterministic when several exist.
    """
    by_identity: Dict[Tuple, List[int]] = defaultdict(list)
    for override in overrides:
        if override.active:
            by_identity[override.identity].append(override.id)

    for identity in sorted(by_identity, key=lambda i: tuple("" if p is None else p for p in i)):
        ids = by_identity[identity]
        if len(ids) > 1:
            scope, scope_key, dimension, key = identity
            raise ConfigConflictError(scope, scope_key, dimension, key, ids)


def select_layers(
    context: RulesetContext,
    overrides: Iterable[OverrideRecord],
) -> Dict[Scope, List[OverrideRecord]]:
    """Group active overrides that apply to context by scope, ordered by id."""
    layers: Dict[Scope, List[OverrideRecord]] = {scope: [] for scope in SCOPE_ORDER}
    for override in overrides:
        if override.active and context.matches(override.scope, override.scope_key):
            layers[override.scope].append(override)
    for scope in layers:
        layers[scope].sort(key=lambda o: o.id)
    return layers


def _layer_entries(
    builtins: Sequence[OverrideDraft],
    layers: Dict[Scope, List[OverrideRecord]],
) -> List[_LayerEntry]:
    entries = [
        _LayerEntry(Scope.BASE, f"builtin:{d.dimension.value}:{d.key}", (0, index), d)
        for index, d in enumerate(builtins)
    ]
    for scope in SCOPE_ORDER:
        entries.extend(
            _LayerEntry(scope, str(o.id), (1, o.id), o) for o in layers[scope]
        )
    return entries


def merge_ruleset(
    context: RulesetContext,
    overrides: Iterable[OverrideRecord],
    merge_config: Optional[MergeConfig] = None,
    builtins: Sequence[OverrideDraft] = BUILTIN_ENTRIES,
    degraded: bool = False,
    warnings: Sequence[str] = (),
) -> MergedRuleSet:
    """
    Merge the built-in layer and the overrides matching context.

    Raises:
        ConfigConflictError: two active overrides share an identity
    """
    merge_config = merge_config or MergeConfig()
    overrides = list(overrides)
    layers = select_layers(context, overrides)
    detect_conflicts(o for scope in SCOPE_ORDER for o in layers[scope])

    merge_warnings = list(warnings)
    resolutions: Dict[Tuple[Dimension, str], _Resolution] = {}

    for entry in _layer_entries(builtins, layers):
        draft = entry.draft
        slot = (draft.dimension, draft.key)
        acc = resolutions.get(slot)
        if acc is None:
            acc = _Resolution(dimension=draft.dimension, key=draft.key, ordinal=entry.ordinal)
            resolutions[slot] = acc

        value_set = VALUE_MERGERS[DIMENSION_MERGE_KIND[draft.dimension]](acc, entry)

        applied_multiplier = None
        if draft.weight_multiplier is not None:
            if draft.dimension in NON_MULTIPLIABLE:
                merge_warnings.append(
                    f"Ignored weight_multiplier on {draft.dimension.value} '{draft.key}' "
                    f"(override {entry.source_id}, scope {entry.scope.value})"
                )
            else:
                acc.multiplier *= draft.weight_multiplier
                applied_multiplier = draft.weight_multiplier

        if draft.priority is not None:
            acc.priority = draft.priority

        if value_set or applied_multiplier is not None or draft.priority is not None:
            acc.provenance = entry.scope
        acc.contributors.append(Contributor(
            scope=entry.scope,
            source_id=entry.source_id,
            value_set=value_set,
            multiplier=applied_multiplier,
            priority=draft.priority,
        ))

    entries: Dict[str, Dict[str, ResolvedValue]] = {}
    for (dimension, key), acc in sorted(resolutions.items(), key=lambda item: (item[0][0].value, item[0][1])):
        multiplier = clamp(acc.multiplier, merge_config.multiplier_floor, merge_config.multiplier_ceiling)
        if multiplier != acc.multiplier:
            merge_warnings.append(
                f"Composed multiplier {acc.multiplier:.4g} for {dimension.value} '{key}' "
                f"clamped to {multiplier:.4g}"
            )
        entries.setdefault(dimension.value, {})[key] = ResolvedValue(
            dimension=dimension,
            key=key,
            value=acc.value,
            multiplier=multiplier,
            priority=acc.priority,
            provenance=acc.provenance,
            value_provenance=acc.value_scope,
            contributors=tuple(acc.contributors),
            ordinal=acc.ordinal,
        )

    contributing = [o for scope in SCOPE_ORDER for o in layers[scope]]
    version_hash = RulesetFingerprinter.calculate(
        context.key,
        [[o.id, o.updated_at.isoformat()] for o in contributing],
        BUILTIN_RULESET_VERSION,
    )
    ruleset = MergedRuleSet(
        context=context,
        entries=entries,
        version_hash=version_hash,
        base_version=BUILTIN_RULESET_VERSION,
        contributing_override_ids=tuple(sorted(o.id for o in contributing)),
        degraded=degraded,
        warnings=tuple(merge_warnings),
    )
    logger.debug(
        f"Merged ruleset for {context.key}: {len(contributing)} overrides, "
        f"version {version_hash[:12]}{' (degraded)' if degraded else ''}"
    )
    return ruleset


def builtin_ruleset(
    context: RulesetContext,
    merge_config: Optional[MergeConfig] = None,
    degraded: bool = False,
    warnings: Sequence[str] = (),
) -> MergedRuleSet:
    """The built-in layer alone, resolved for context."""
    return merge_ruleset(context, [], merge_config, degraded=degraded, warnings=warnings)
