#!/usr/bin/env python3
"""
Exception taxonomy for the audit engine.

Invariant violations (conflicting overrides, unsafe patterns, cross-locale
combos) always surface to the caller. MissingInputError is local to one
formula and recovered by the formula engine. StoreUnavailableError triggers
the built-in ruleset fallback. StaleCacheError never leaves the cache layer.
"""

from typing import Iterable, Optional, Sequence


class AuditEngineError(Exception):
    """Base exception for audit engine errors."""
    pass


class ConfigConflictError(AuditEngineError):
    """Raised when two active overrides share (scope, scope_key, dimension, key)."""

    def __init__(self, scope: str, scope_key: Optional[str], dimension: str, key: str,
                 override_ids: Sequence[int]):
        self.scope = scope
        self.scope_key = scope_key
        self.dimension = dimension
        self.key = key
        self.override_ids = tuple(sorted(override_ids))
        ids = ", ".join(str(i) for i in self.override_ids)
        where = f"{scope}:{scope_key}" if scope_key else scope
        super().__init__(
            f"Conflicting active overrides for ({where}, {dimension}, {key!r}): ids [{ids}]"
        )


class UnsafePatternError(AuditEngineError):
    """Raised when a pattern is rejected at ingestion time."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Unsafe pattern {pattern!r}: {reason}")


class CrossLocaleComboError(AuditEngineError):
    """Raised when a combination mixes tokens from more than one locale."""

    def __init__(self, locales: Iterable[str], tokens: Iterable[str]):
        self.locales = tuple(sorted(set(locales)))
        self.tokens = tuple(tokens)
        super().__init__(
            f"Combination {' '.join(self.tokens)!r} mixes locales {list(self.locales)}"
        )


class MissingInputError(AuditEngineError):
    """Raised by a formula whose required input is absent."""

    def __init__(self, formula_id: str, input_name: str):
        self.formula_id = formula_id
        self.input_name = input_name
        super().__init__(f"Formula '{formula_id}' is missing required input '{input_name}'")


class StoreUnavailableError(AuditEngineError):
    """Raised by an override or snapshot store that cannot be reached."""
    pass


class StaleCacheError(AuditEngineError):
    """Raised inside the cache when an in-flight result was invalidated."""
    pass


class InvalidOverrideError(AuditEngineError):
    """Raised when an override record has an invalid shape for its dimension."""
    pass


class RulesetVersionNotFoundError(AuditEngineError):
    """Raised when rolling back to a version that was never published."""

    def __init__(self, context_key: str, version: int):
        self.context_key = context_key
        self.version = version
        super().__init__(f"Ruleset version {version} not found for context '{context_key}'")


class InvalidStateTransitionError(AuditEngineError):
    """Raised when an audit run attempts an illegal state transition."""
    pass
