#!/usr/bin/env python3
"""
Merge Service - Resolves, previews, publishes and rolls back rulesets.

Wires the pure merger to an override store and the ruleset cache:
- resolve(): cached merge for a context; store outages degrade to built-ins
- publish(): supersede overrides and record a new ruleset version
- rollback(): restore a recorded version's override set as a new version

Publish and rollback always bypass the cache and force a fresh merge.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from audit_engine.cache.ruleset_cache import RulesetCacheService
from audit_engine.config_loader import MergeConfig
from audit_engine.exceptions import (
    InvalidOverrideError,
    RulesetVersionNotFoundError,
    StoreUnavailableError,
)
from audit_engine.ruleset.merger import builtin_ruleset, merge_ruleset
from audit_engine.ruleset.models import (
    MergedRuleSet,
    OverrideChange,
    OverrideDraft,
    OverrideRecord,
    RulesetContext,
)
from audit_engine.ruleset.store import OverrideStore
from audit_engine.ruleset.validation import validate_override

logger = logging.getLogger(__name__)


class MergeService:
    def __init__(
        self,
        store: OverrideStore,
        cache: Optional[RulesetCacheService] = None,
        merge_config: Optional[MergeConfig] = None,
    ):
        self.store = store
        self.cache = cache
        self.merge_config = merge_config or MergeConfig()
        store.subscribe(self._on_override_change)

    def _on_override_change(self, change: OverrideChange) -> None:
        if self.cache is not None:
            self.cache.invalidate_for_change(change)

    def _merge(self, context: RulesetContext) -> MergedRuleSet:
        try:
            overrides = self.store.list_active_overrides(context)
        except StoreUnavailableError as e:
            logger.warning(f"Override store unavailable for {context.key}, using built-in ruleset: {e}")
            return builtin_ruleset(
                context,
                self.merge_config,
                degraded=True,
                warnings=(f"Override store unavailable: {e}",),
            )
        return merge_ruleset(context, overrides, self.merge_config)

    def resolve(self, context: RulesetContext, bypass_cache: bool = False) -> MergedRuleSet:
        """
        Merged ruleset for context.

        Raises:
            ConfigConflictError: conflicting active overrides
        """
        if self.cache is None:
            return self._merge(context)
        if bypass_cache:
            ruleset = self._merge(context)
            self.cache.invalidate(context.key)
            self.cache.put(ruleset)
            return ruleset
        return self.cache.get_or_compute(context, lambda: self._merge(context))

    def preview_merge(self, context: RulesetContext) -> MergedRuleSet:
        return self.resolve(context)

    def _check_targets(self, context: RulesetContext, drafts: Sequence[OverrideDraft]) -> None:
        for draft in drafts:
            if not context.matches(draft.scope, draft.scope_key):
                raise InvalidOverrideError(
                    f"Override ({draft.scope.value}:{draft.scope_key}, {draft.dimension.value}, "
                    f"'{draft.key}') does not apply to context {context.key}"
                )
            validate_override(draft)
        seen = set()
        for draft in drafts:
            if draft.identity in seen:
                raise InvalidOverrideError(
                    f"Override ({draft.dimension.value}, '{draft.key}') appears twice in one publish"
                )
            seen.add(draft.identity)

    def _dry_run(
        self,
        context: RulesetContext,
        active_by_identity: Dict[Tuple, List[OverrideRecord]],
        superseded: Sequence[int],
        drafts: Sequence[OverrideDraft],
    ) -> None:
        """Merge the projected override set so a conflicting publish fails before any write."""
        now = datetime.now(timezone.utc)
        projected = [
            record
            for records in active_by_identity.values()
            for record in records
            if record.id not in superseded
        ]
        projected.extend(
            OverrideRecord(**draft.model_dump(), id=-(index + 1), created_at=now, updated_at=now)
            for index, draft in enumerate(drafts)
        )
        merge_ruleset(context, projected, self.merge_config)

    def _record_version(self, context: RulesetContext, notes: Optional[str], author: str) -> int:
        ruleset = self.resolve(context, bypass_cache=True)
        active = self.store.list_active_overrides(context)
        version = self.store.record_version(context, ruleset.version_hash, active, notes, author)
        logger.info(
            f"Recorded ruleset version {version.version} for {context.key} "
            f"({len(active)} overrides, hash {ruleset.version_hash[:12]})"
        )
        return version.version

    def publish(
        self,
        context: RulesetContext,
        overrides: Sequence[OverrideDraft],
        notes: Optional[str] = None,
        author: str = "system",
    ) -> int:
        """
        Publish overrides for context and return the new version number.

        Each published override supersedes the active record with the same
        (scope, scope_key, dimension, key).
        """
        self._check_targets(context, overrides)
        active_by_identity: Dict[Tuple, List[OverrideRecord]] = {}
        for record in self.store.list_active_overrides(context):
            active_by_identity.setdefault(record.identity, []).append(record)

        superseded = [
            record.id
            for draft in overrides
            for record in active_by_identity.get(draft.identity, [])
        ]
        self._dry_run(context, active_by_identity, superseded, overrides)
        self.store.apply_changes(superseded, overrides, author)
        logger.info(
            f"Published {len(overrides)} overrides for {context.key} "
            f"(superseded {len(superseded)}) by {author}"
        )
        return self._record_version(context, notes, author)

    def rollback(self, context: RulesetContext, to_version: int, author: str = "system") -> int:
        """
        Restore the active override set recorded in to_version.

        Raises:
            RulesetVersionNotFoundError: to_version was never recorded for context
        """
        target = self.store.get_version(context, to_version)
        if target is None:
            raise RulesetVersionNotFoundError(context.key, to_version)

        wanted = {record.identity: record.to_draft() for record in target.overrides}
        current: Dict[Tuple, List[OverrideRecord]] = {}
        for record in self.store.list_active_overrides(context):
            current.setdefault(record.identity, []).append(record)

        deactivate_ids: List[int] = []
        drafts: List[OverrideDraft] = []
        for identity, records in current.items():
            draft = wanted.get(identity)
            if draft is not None and len(records) == 1 and records[0].to_draft().same_payload(draft):
                continue
            deactivate_ids.extend(r.id for r in records)
        kept = {identity for identity, records in current.items()
                if identity in wanted and not any(r.id in deactivate_ids for r in records)}
        for identity, draft in wanted.items():
            if identity not in kept:
                drafts.append(draft)

        self.store.apply_changes(deactivate_ids, drafts, author)
        logger.info(
            f"Rolled back {context.key} to version {to_version}: "
            f"deactivated {len(deactivate_ids)}, re-created {len(drafts)}"
        )
        return self._record_version(context, f"rollback to version {to_version}", author)
