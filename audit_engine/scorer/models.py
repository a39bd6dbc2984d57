#!/usr/bin/env python3
"""
Scoring Models - Data structures for formula definitions and results.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from audit_engine.exceptions import MissingInputError
from audit_engine.tokens.models import Combo, Token


@dataclass(frozen=True)
class ScoringInputs:
    """Immutable per-locale inputs shared by every formula."""
    locale: str
    vertical: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    title_keywords: Tuple[str, ...] = ()
    subtitle_keywords: Tuple[str, ...] = ()
    keyword_relevance: Mapping[str, int] = field(default_factory=dict)
    tokens: Optional[Tuple[Token, ...]] = None
    combos: Optional[Tuple[Combo, ...]] = None
    raw_token_count: int = 0
    stopword_count: int = 0
    description_hook_categories: Tuple[str, ...] = ()
    title_char_limit: int = 30
    subtitle_char_limit: int = 30

    def require(self, formula_id: str, name: str) -> Any:
        """Return an input or raise MissingInputError when it is absent or blank."""
        value = getattr(self, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingInputError(formula_id, name)
        return value

    def relevance(self, keyword: str) -> int:
        return self.keyword_relevance.get(keyword, 1)


@dataclass
class FormulaOutcome:
    score: float
    inputs_used: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FormulaDefinition:
    """A named, registered scoring formula and its overridable defaults."""
    id: str
    label: str
    dimension: str
    weight: float
    required_inputs: Tuple[str, ...]
    compute: Callable[[ScoringInputs, Mapping[str, Any]], FormulaOutcome]
    params: Mapping[str, Any] = field(default_factory=dict)
    pass_threshold: float = 70.0
    borderline_margin: float = 10.0
    pass_message: str = "{label} looks good in {locale} ({score}/100)."
    fail_message: str = "{label} is below target in {locale} ({score}/100, needs {threshold})."


class FormulaResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    formula_id: str
    label: str
    locale: str
    dimension: str
    score: float
    passed: bool
    borderline: bool = False
    weight: float
    threshold: float
    borderline_margin: float = 0.0
    message: str
    inputs_used: Dict[str, Any] = Field(default_factory=dict)

    @property
    def needs_attention(self) -> bool:
        return (not self.passed) or self.borderline


class FormulaEvaluation(BaseModel):
    """All formula results for one locale plus the weighted overall score."""
    model_config = ConfigDict(frozen=True)

    locale: str
    results: Tuple[FormulaResult, ...] = ()
    overall_score: float = 0.0
    total_weight: float = 0.0
    warnings: Tuple[str, ...] = ()
    skipped: Tuple[str, ...] = ()
