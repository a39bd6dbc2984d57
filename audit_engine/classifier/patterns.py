#!/usr/bin/env python3
"""
Intent Patterns - Match strategies and pattern safety checks.

A pattern is matched by the strategy selected from its match_type. Regex
patterns are screened before use so a single override cannot make
classification backtrack catastrophically.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from audit_engine.exceptions import UnsafePatternError

logger = logging.getLogger(__name__)

MAX_PATTERN_LENGTH = 200

# (a+)+ / (a*)* / (\w+){2,} style nesting
_NESTED_QUANTIFIER = re.compile(
    r"\((?:[^()\\]|\\.)*(?:[+*]|\{\d*,\d*\})\)\s*(?:[+*]|\{\d*,\d*\}|\{\d{2,}\})"
)
# (a|ab)+ / (ab|a.)+ style alternation under a quantifier
_QUANTIFIED_ALTERNATION = re.compile(r"\(((?:[^()\\]|\\.)*\|(?:[^()\\]|\\.)*)\)\s*(?:[+*]|\{\d*,\d*\})")
_GROUP_PREFIX = re.compile(r"^\?[aiLmsux]*:")
# Literal characters and escaped punctuation only
_LITERAL_BRANCH = re.compile(r"(?:[^.^$*+?{}\[\]()|\\]|\\[^A-Za-z0-9])+")
_BACKREFERENCE = re.compile(r"\\[1-9]|\(\?P=")


class IntentType(str, Enum):
    INFORMATIONAL = "informational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    NAVIGATIONAL = "navigational"


# Four-category combo taxonomy
COMBO_CATEGORIES: Dict[Optional[IntentType], str] = {
    IntentType.INFORMATIONAL: "learning",
    IntentType.COMMERCIAL: "outcome",
    IntentType.TRANSACTIONAL: "outcome",
    IntentType.NAVIGATIONAL: "brand",
    None: "noise",
}


def combo_category(intent_type: Optional[IntentType]) -> str:
    return COMBO_CATEGORIES[intent_type]


class MatchType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    REGEX = "regex"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", value).lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


@dataclass(frozen=True)
class IntentPattern:
    pattern_id: str
    pattern: str
    match_type: MatchType
    intent_type: IntentType
    weight: float = 1.0
    priority: int = 0
    case_sensitive: bool = False
    word_boundary: bool = True
    provenance: str = "base"
    active: bool = True
    ordinal: Tuple[int, int] = (0, 0)

    @property
    def sort_key(self) -> Tuple[int, Tuple[int, int], str]:
        return (-self.priority, self.ordinal, self.pattern_id)

    @classmethod
    def from_value(
        cls,
        pattern_id: str,
        value: Mapping[str, Any],
        weight_multiplier: float = 1.0,
        priority: Optional[int] = None,
        provenance: str = "base",
        ordinal: Tuple[int, int] = (0, 0),
    ) -> "IntentPattern":
        """Build a pattern from an intent_pattern ruleset value."""
        return cls(
            pattern_id=pattern_id,
            pattern=str(value.get("pattern", pattern_id)),
            match_type=MatchType(value.get("match_type", MatchType.CONTAINS.value)),
            intent_type=IntentType(value["intent_type"]),
            weight=float(value.get("weight", 1.0)) * weight_multiplier,
            priority=int(priority if priority is not None else value.get("priority", 0)),
            case_sensitive=bool(value.get("case_sensitive", False)),
            word_boundary=bool(value.get("word_boundary", True)),
            provenance=provenance,
            active=bool(value.get("active", True)),
            ordinal=ordinal,
        )


def _first_literal(branch: str) -> str:
    return (branch[1] if branch.startswith("\\") else branch[0]).casefold()


def _is_disjoint_literal_alternation(body: str) -> bool:
    """
    True when every branch is a plain literal and no two branches start with
    the same character, so a repeated group can only match one way.
    """
    branches = _GROUP_PREFIX.sub("", body, count=1).split("|")
    if not all(_LITERAL_BRANCH.fullmatch(branch) for branch in branches):
        return False
    firsts = [_first_literal(branch) for branch in branches]
    return len(set(firsts)) == len(firsts)


def ensure_safe_pattern(pattern: str, match_type: MatchType) -> None:
    """Raise UnsafePatternError if a pattern may not be used for matching."""
    if not isinstance(pattern, str) or not pattern.strip():
        raise UnsafePatternError(str(pattern), "pattern is empty")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise UnsafePatternError(pattern, f"pattern longer than {MAX_PATTERN_LENGTH} characters")
    if match_type != MatchType.REGEX:
        return

    if _BACKREFERENCE.search(pattern):
        raise UnsafePatternError(pattern, "backreferences are not allowed")
    if _NESTED_QUANTIFIER.search(pattern):
        raise UnsafePatternError(pattern, "nested quantifiers can backtrack catastrophically")
    for group in _QUANTIFIED_ALTERNATION.finditer(pattern):
        if not _is_disjoint_literal_alternation(group.group(1)):
            raise UnsafePatternError(
                pattern, "overlapping alternation under a quantifier"
            )
    try:
        re.compile(pattern)
    except re.error as e:
        raise UnsafePatternError(pattern, f"invalid regular expression: {e}") from e


@lru_cache(maxsize=2048)
def _compile(expression: str, flags: int) -> "re.Pattern[str]":
    return re.compile(expression, flags)


def _flags(pattern: IntentPattern) -> int:
    return 0 if pattern.case_sensitive else re.IGNORECASE


def _fold(text: str, pattern: IntentPattern) -> str:
    return text if pattern.case_sensitive else text.casefold()


def _match_exact(text: str, pattern: IntentPattern) -> bool:
    return _fold(text.strip(), pattern) == _fold(pattern.pattern.strip(), pattern)


def _match_contains(text: str, pattern: IntentPattern) -> bool:
    if pattern.word_boundary:
        expression = rf"\b{re.escape(pattern.pattern)}\b"
        return _compile(expression, _flags(pattern)).search(text) is not None
    return _fold(pattern.pattern, pattern) in _fold(text, pattern)


def _match_starts_with(text: str, pattern: IntentPattern) -> bool:
    if pattern.word_boundary:
        expression = rf"^{re.escape(pattern.pattern)}\b"
        return _compile(expression, _flags(pattern)).search(text.lstrip()) is not None
    return _fold(text.lstrip(), pattern).startswith(_fold(pattern.pattern, pattern))


def _match_regex(text: str, pattern: IntentPattern) -> bool:
    expression = rf"\b(?:{pattern.pattern})\b" if pattern.word_boundary else pattern.pattern
    return _compile(expression, _flags(pattern)).search(text) is not None


MATCH_STRATEGIES: Dict[MatchType, Callable[[str, IntentPattern], bool]] = {
    MatchType.EXACT: _match_exact,
    MatchType.CONTAINS: _match_contains,
    MatchType.STARTS_WITH: _match_starts_with,
    MatchType.REGEX: _match_regex,
}


def matches(text: str, pattern: IntentPattern) -> bool:
    """Apply the strategy selected by the pattern's match_type."""
    return MATCH_STRATEGIES[pattern.match_type](text, pattern)
