#!/usr/bin/env python3
"""
Audit Models - Run state machine and the immutable audit snapshot.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from audit_engine.exceptions import InvalidStateTransitionError
from audit_engine.ruleset.models import RulesetContext
from audit_engine.scorer.models import FormulaResult
from audit_engine.scorer.recommendations import Recommendation
from audit_engine.tokens.models import Advisory, Combo, FusedKeyword, Token
from audit_engine.utils import stable_hash


class AuditState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    COMBINING = "combining"
    SCORING = "scoring"
    COMPLETE = "complete"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    AuditState.PENDING: {AuditState.FETCHING, AuditState.CLASSIFYING, AuditState.FAILED},
    AuditState.FETCHING: {AuditState.CLASSIFYING, AuditState.FAILED},
    AuditState.CLASSIFYING: {AuditState.COMBINING, AuditState.FAILED},
    AuditState.COMBINING: {AuditState.SCORING, AuditState.FAILED},
    AuditState.SCORING: {AuditState.COMPLETE, AuditState.FAILED},
    AuditState.COMPLETE: set(),
    AuditState.FAILED: set(),
}


class AuditRun:
    """Tracks one audit's progress through the state machine."""

    def __init__(self):
        self.state = AuditState.PENDING
        self.history: List[AuditState] = [AuditState.PENDING]
        self.failure_reason: Optional[str] = None

    def transition(self, target: AuditState, reason: Optional[str] = None) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(
                f"Illegal audit transition {self.state.value} -> {target.value}"
            )
        self.state = target
        self.history.append(target)
        if target == AuditState.FAILED:
            self.failure_reason = reason

    @property
    def is_terminal(self) -> bool:
        return self.state in (AuditState.COMPLETE, AuditState.FAILED)


class LocaleStatus(str, Enum):
    COMPLETE = "complete"
    UNAVAILABLE = "unavailable"
    CANCELLED = "cancelled"


class LocaleResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    locale: str
    status: LocaleStatus
    overall_score: Optional[float] = None
    reason: Optional[str] = None
    warnings: Tuple[str, ...] = ()


# Excluded from content_hash
_VOLATILE_FIELDS = {"created_at", "content_hash"}


class AuditSnapshot(BaseModel):
    """
    Immutable result of one audit.

    content_hash covers every field except created_at, so identical inputs
    under the same ruleset version produce identical hashes.
    """
    model_config = ConfigDict(frozen=True)

    app_id: Optional[str] = None
    context: RulesetContext
    locale_set: Tuple[str, ...]
    status: AuditState
    failure_reason: Optional[str] = None
    error_type: Optional[str] = None
    tokens: Tuple[Token, ...] = ()
    combos: Tuple[Combo, ...] = ()
    fused_keywords: Tuple[FusedKeyword, ...] = ()
    formula_results: Tuple[FormulaResult, ...] = ()
    locale_results: Tuple[LocaleResult, ...] = ()
    overall_score: Optional[float] = None
    recommendations: Tuple[Recommendation, ...] = ()
    warnings: Tuple[str, ...] = ()
    advisories: Tuple[Advisory, ...] = ()
    ruleset_version_hash: Optional[str] = None
    degraded: bool = False
    content_hash: str = ""
    created_at: datetime

    def content_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude=_VOLATILE_FIELDS)

    def with_content_hash(self) -> "AuditSnapshot":
        return self.model_copy(update={"content_hash": stable_hash(self.content_payload())})

    @property
    def is_complete(self) -> bool:
        return self.status == AuditState.COMPLETE

    def results_for(self, locale: str) -> List[FormulaResult]:
        return [r for r in self.formula_results if r.locale == locale]
