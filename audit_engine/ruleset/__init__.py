#!/usr/bin/env python3
"""
Ruleset Module - Hierarchical override merge.

- models.py: Scopes, dimensions, overrides and the merged ruleset
- defaults.py: Built-in base layer
- validation.py: Override shape checks
- merger.py: Pure layer merge and conflict detection
- store.py: Override store interface and in-memory store
- service.py: MergeService (resolve / preview / publish / rollback)

Only the models are re-exported here; classifier, tokens and scorer import
them without pulling in the merge machinery.
"""

from audit_engine.ruleset.models import (
    Dimension,
    MergedRuleSet,
    OverrideDraft,
    OverrideRecord,
    RulesetContext,
    Scope,
)

__all__ = ['Dimension', 'MergedRuleSet', 'OverrideDraft', 'OverrideRecord', 'RulesetContext', 'Scope']
