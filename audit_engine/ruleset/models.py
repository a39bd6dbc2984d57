#!/usr/bin/env python3
"""
Ruleset Models - Override records, contexts and the merged ruleset.

Scopes are ordered base < vertical < market < client < app. A MergedRuleSet is
frozen once built; a changed override produces a new ruleset with a new
version hash rather than mutating the old one.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from audit_engine.utils import RulesetFingerprinter


class Scope(str, Enum):
    BASE = "base"
    VERTICAL = "vertical"
    MARKET = "market"
    CLIENT = "client"
    APP = "app"

    @property
    def rank(self) -> int:
        return SCOPE_ORDER.index(self)


SCOPE_ORDER: Tuple[Scope, ...] = (Scope.BASE, Scope.VERTICAL, Scope.MARKET, Scope.CLIENT, Scope.APP)

# Scope keys that are matched case-insensitively
_CASE_INSENSITIVE_SCOPES = (Scope.VERTICAL, Scope.MARKET)


class Dimension(str, Enum):
    TOKEN_RELEVANCE = "token_relevance"
    INTENT_PATTERN = "intent_pattern"
    STOPWORD = "stopword"
    HOOK_PATTERN = "hook_pattern"
    KPI_WEIGHT = "kpi_weight"
    FORMULA_PARAM = "formula_param"
    RULE_THRESHOLD = "rule_threshold"
    RECOMMENDATION_TEMPLATE = "recommendation_template"


class MergeKind(str, Enum):
    REPLACE = "replace"
    MULTIPLY = "multiply"
    MOST_SPECIFIC = "most_specific"


def normalize_scope_key(scope: Scope, scope_key: Optional[str]) -> Optional[str]:
    if scope_key is None:
        return None
    value = str(scope_key).strip()
    if not value:
        return None
    if scope in _CASE_INSENSITIVE_SCOPES:
        return RulesetFingerprinter.normalize_scope_key(value)
    return value


class RulesetContext(BaseModel):
    """The (vertical, market, organization, app) tuple a ruleset is resolved for."""
    model_config = ConfigDict(frozen=True)

    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None

    @model_validator(mode="after")
    def _normalize(self) -> "RulesetContext":
        object.__setattr__(self, "vertical", normalize_scope_key(Scope.VERTICAL, self.vertical))
        object.__setattr__(self, "market", normalize_scope_key(Scope.MARKET, self.market))
        object.__setattr__(self, "organization_id", normalize_scope_key(Scope.CLIENT, self.organization_id))
        object.__setattr__(self, "app_id", normalize_scope_key(Scope.APP, self.app_id))
        return self

    def scope_key_for(self, scope: Scope) -> Optional[str]:
        return {
            Scope.BASE: None,
            Scope.VERTICAL: self.vertical,
            Scope.MARKET: self.market,
            Scope.CLIENT: self.organization_id,
            Scope.APP: self.app_id,
        }[scope]

    def matches(self, scope: Scope, scope_key: Optional[str]) -> bool:
        """True when an override at (scope, scope_key) applies to this context."""
        if scope == Scope.BASE:
            return True
        own = self.scope_key_for(scope)
        return own is not None and own == normalize_scope_key(scope, scope_key)

    @property
    def key(self) -> str:
        return (
            f"v={self.vertical or ''}|m={self.market or ''}"
            f"|o={self.organization_id or ''}|a={self.app_id or ''}"
        )


class OverrideDraft(BaseModel):
    """An override before the store assigns it an id and timestamps."""
    model_config = ConfigDict(frozen=True)

    scope: Scope
    scope_key: Optional[str] = None
    dimension: Dimension
    key: str
    value: Any = None
    weight_multiplier: Optional[float] = None
    priority: Optional[int] = None

    @model_validator(mode="after")
    def _check_scope_key(self):
        object.__setattr__(self, "scope_key", normalize_scope_key(self.scope, self.scope_key))
        object.__setattr__(self, "key", self.key.strip())
        if self.scope == Scope.BASE and self.scope_key is not None:
            raise ValueError("base-scope overrides cannot carry a scope_key")
        if self.scope != Scope.BASE and self.scope_key is None:
            raise ValueError(f"{self.scope.value}-scope overrides require a scope_key")
        if not self.key:
            raise ValueError("override key must not be empty")
        return self

    @property
    def identity(self) -> Tuple[str, Optional[str], str, str]:
        return (self.scope.value, self.scope_key, self.dimension.value, self.key)

    def same_payload(self, other: "OverrideDraft") -> bool:
        return (
            self.value == other.value
            and self.weight_multiplier == other.weight_multiplier
            and self.priority == other.priority
        )


class OverrideRecord(OverrideDraft):
    """A stored override with provenance."""

    id: int
    active: bool = True
    author: str = "system"
    created_at: datetime
    updated_at: datetime

    def to_draft(self) -> OverrideDraft:
        return OverrideDraft(
            scope=self.scope,
            scope_key=self.scope_key,
            dimension=self.dimension,
            key=self.key,
            value=self.value,
            weight_multiplier=self.weight_multiplier,
            priority=self.priority,
        )


class OverrideChange(BaseModel):
    """Change notification emitted by an override store."""
    model_config = ConfigDict(frozen=True)

    override_id: int
    scope: Scope
    scope_key: Optional[str] = None
    action: str
    changed_at: datetime


class RulesetVersionRecord(BaseModel):
    """A published version of a context's active override set."""
    model_config = ConfigDict(frozen=True)

    context_key: str
    version: int
    version_hash: str
    notes: Optional[str] = None
    overrides: Tuple[OverrideRecord, ...] = ()
    created_by: str = "system"
    created_at: datetime


class Contributor(BaseModel):
    """One layer's contribution to a resolved field."""
    model_config = ConfigDict(frozen=True)

    scope: Scope
    source_id: str
    value_set: bool = False
    multiplier: Optional[float] = None
    priority: Optional[int] = None


class ResolvedValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: Dimension
    key: str
    value: Any = None
    multiplier: float = 1.0
    priority: Optional[int] = None
    provenance: Scope
    value_provenance: Optional[Scope] = None
    contributors: Tuple[Contributor, ...] = ()
    # Tie-break order: (0, n) for built-in entries, (1, id) for stored overrides
    ordinal: Tuple[int, int] = (0, 0)

    def number(self, default: float = 0.0) -> float:
        """Numeric value with the composed multiplier applied."""
        base = self.value if isinstance(self.value, (int, float)) and not isinstance(self.value, bool) else default
        return float(base) * self.multiplier


class MergedRuleSet(BaseModel):
    """
    Effective, merged ruleset for one context.

    entries maps dimension value -> key -> ResolvedValue.
    """
    model_config = ConfigDict(frozen=True)

    context: RulesetContext
    entries: Dict[str, Dict[str, ResolvedValue]] = Field(default_factory=dict)
    version_hash: str
    base_version: str
    contributing_override_ids: Tuple[int, ...] = ()
    degraded: bool = False
    warnings: Tuple[str, ...] = ()

    @field_validator("entries")
    @classmethod
    def _known_dimensions(cls, value: Dict[str, Dict[str, ResolvedValue]]):
        for dimension in value:
            Dimension(dimension)
        return value

    def get(self, dimension: Dimension, key: str) -> Optional[ResolvedValue]:
        return self.entries.get(dimension.value, {}).get(key)

    def items(self, dimension: Dimension) -> List[ResolvedValue]:
        return list(self.entries.get(dimension.value, {}).values())

    def value(self, dimension: Dimension, key: str, default: Any = None) -> Any:
        resolved = self.get(dimension, key)
        if resolved is None or resolved.value is None:
            return default
        return resolved.value

    def token_relevance(self, token: str) -> Optional[int]:
        value = self.value(Dimension.TOKEN_RELEVANCE, token)
        return int(value) if value is not None else None

    def stopwords_for(self, locale: str) -> frozenset:
        """
        Stopwords active for a locale.

        Unprefixed keys apply to every locale; "es:de" applies to "es" and "es-*".
        """
        locale_norm = (locale or "").strip().lower().replace("_", "-")
        language = locale_norm.split("-")[0]
        words = set()
        for resolved in self.items(Dimension.STOPWORD):
            if not resolved.value:
                continue
            prefix, sep, word = resolved.key.rpartition(":")
            if not sep:
                words.add(resolved.key.lower())
            elif prefix.lower() in (locale_norm, language):
                words.add(word.lower())
        return frozenset(words)

    def kpi_weight(self, formula_id: str, default: float) -> float:
        resolved = self.get(Dimension.KPI_WEIGHT, formula_id)
        if resolved is None:
            return default
        return resolved.number(default)

    def formula_param(self, formula_id: str, param: str, default: Any) -> Any:
        resolved = self.get(Dimension.FORMULA_PARAM, f"{formula_id}.{param}")
        if resolved is None:
            return default
        if isinstance(default, (int, float)) and not isinstance(default, bool):
            return resolved.number(default)
        return resolved.value if resolved.value is not None else default

    def threshold(self, key: str, default: float) -> float:
        value = self.value(Dimension.RULE_THRESHOLD, key)
        return float(value) if value is not None else float(default)

    def template(self, formula_id: str) -> Optional[str]:
        value = self.value(Dimension.RECOMMENDATION_TEMPLATE, formula_id)
        return str(value) if value is not None else None
