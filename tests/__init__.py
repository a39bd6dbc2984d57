#!/usr/bin/env python3
"""
Test suite configuration and utilities.

All tests can be run with standard Python tools:

    # Run all tests
    python -m pytest tests/ -v

    # Skip the SQLite-backed store tests
    python -m pytest tests/ -v -m "not db"

Helpers here build overrides and records without a store so merge tests
stay pure.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from audit_engine.ruleset.models import Dimension, OverrideDraft, OverrideRecord, Scope

FIXED_TIME = datetime(2025, 11, 1, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_TIME


def make_draft(
    scope: Scope,
    dimension: Dimension,
    key: str,
    value: Any = None,
    scope_key: Optional[str] = None,
    weight_multiplier: Optional[float] = None,
    priority: Optional[int] = None,
) -> OverrideDraft:
    return OverrideDraft(
        scope=scope,
        scope_key=scope_key,
        dimension=dimension,
        key=key,
        value=value,
        weight_multiplier=weight_multiplier,
        priority=priority,
    )


def make_record(
    override_id: int,
    scope: Scope,
    dimension: Dimension,
    key: str,
    value: Any = None,
    scope_key: Optional[str] = None,
    weight_multiplier: Optional[float] = None,
    priority: Optional[int] = None,
    active: bool = True,
    updated_at: datetime = FIXED_TIME,
) -> OverrideRecord:
    return OverrideRecord(
        id=override_id,
        scope=scope,
        scope_key=scope_key,
        dimension=dimension,
        key=key,
        value=value,
        weight_multiplier=weight_multiplier,
        priority=priority,
        active=active,
        created_at=FIXED_TIME,
        updated_at=updated_at,
    )


SAMPLE_METADATA = {
    "en-US": {
        "title": "Learn Spanish Daily Lessons!",
        "subtitle": "Grammar practice made easy",
        "description": "Learn Spanish fast with easy lessons. Trusted by millions of learners, "
                       "speak confidently in minutes a day.",
    },
    "es-US": {
        "title": "Aprende Inglés Diario",
        "subtitle": "Gramática y rutina fácil",
        "description": "Aprende inglés con lecciones diarias.",
    },
}
