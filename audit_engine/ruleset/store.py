#!/usr/bin/env python3
"""
Override Store - Persistence interface for ruleset overrides.

Stores emit an OverrideChange to every subscriber after each create, update,
deactivate or delete so merged-ruleset caches can invalidate immediately.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from audit_engine.exceptions import InvalidOverrideError
from audit_engine.ruleset.models import (
    OverrideChange,
    OverrideDraft,
    OverrideRecord,
    RulesetContext,
    RulesetVersionRecord,
)
from audit_engine.ruleset.validation import validate_override

logger = logging.getLogger(__name__)

ChangeListener = Callable[[OverrideChange], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OverrideStore(ABC):
    """Abstract override store with change notification fan-out."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, record: OverrideRecord, action: str, changed_at: datetime) -> None:
        change = OverrideChange(
            override_id=record.id,
            scope=record.scope,
            scope_key=record.scope_key,
            action=action,
            changed_at=changed_at,
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.error(f"Override change listener failed for override {record.id}: {e}")

    @abstractmethod
    def list_active_overrides(self, context: RulesetContext) -> List[OverrideRecord]:
        """All active overrides whose scope matches context."""

    @abstractmethod
    def get_override(self, override_id: int) -> Optional[OverrideRecord]:
        pass

    @abstractmethod
    def create_override(self, draft: OverrideDraft, author: str = "system") -> OverrideRecord:
        pass

    @abstractmethod
    def update_override(self, override_id: int, author: str = "system", **changes: Any) -> OverrideRecord:
        """Update value, weight_multiplier or priority of an override."""

    @abstractmethod
    def deactivate_override(self, override_id: int, author: str = "system") -> OverrideRecord:
        pass

    @abstractmethod
    def delete_override(self, override_id: int, author: str = "system") -> None:
        pass

    @abstractmethod
    def apply_changes(
        self,
        deactivate_ids: Sequence[int],
        drafts: Sequence[OverrideDraft],
        author: str = "system",
    ) -> List[OverrideRecord]:
        """Deactivate then create as one unit; returns the created records."""

    @abstractmethod
    def record_version(
        self,
        context: RulesetContext,
        version_hash: str,
        overrides: Sequence[OverrideRecord],
        notes: Optional[str] = None,
        author: str = "system",
    ) -> RulesetVersionRecord:
        pass

    @abstractmethod
    def get_version(self, context: RulesetContext, version: int) -> Optional[RulesetVersionRecord]:
        pass

    @abstractmethod
    def list_versions(self, context: RulesetContext) -> List[RulesetVersionRecord]:
        pass

    @abstractmethod
    def audit_log(self, override_id: Optional[int] = None) -> List[Dict[str, Any]]:
        pass


UPDATABLE_FIELDS = ("value", "weight_multiplier", "priority")


class InMemoryOverrideStore(OverrideStore):
    """Thread-safe in-process override store."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        super().__init__()
        self._clock = clock
        self._lock = threading.RLock()
        self._records: Dict[int, OverrideRecord] = {}
        self._versions: Dict[str, List[RulesetVersionRecord]] = {}
        self._log: List[Dict[str, Any]] = []
        self._next_id = 1

    def _log_action(self, record: OverrideRecord, action: str, author: str,
                    old_value: Any, new_value: Any, at: datetime) -> None:
        self._log.append({
            "override_id": record.id,
            "action": action,
            "author": author,
            "old_value": old_value,
            "new_value": new_value,
            "changed_at": at,
        })

    def list_active_overrides(self, context: RulesetContext) -> List[OverrideRecord]:
        with self._lock:
            return sorted(
                (r for r in self._records.values() if r.active and context.matches(r.scope, r.scope_key)),
                key=lambda r: r.id,
            )

    def get_override(self, override_id: int) -> Optional[OverrideRecord]:
        with self._lock:
            return self._records.get(override_id)

    def _require(self, override_id: int) -> OverrideRecord:
        record = self._records.get(override_id)
        if record is None:
            raise InvalidOverrideError(f"Override {override_id} does not exist")
        return record

    def _insert(self, draft: OverrideDraft, author: str, at: datetime) -> OverrideRecord:
        record = OverrideRecord(
            **draft.model_dump(),
            id=self._next_id,
            active=True,
            author=author,
            created_at=at,
            updated_at=at,
        )
        self._next_id += 1
        self._records[record.id] = record
        self._log_action(record, "create", author, None, record.value, at)
        return record

    def _deactivate(self, record: OverrideRecord, author: str, at: datetime) -> OverrideRecord:
        updated = record.model_copy(update={"active": False, "updated_at": at, "author": author})
        self._records[record.id] = updated
        self._log_action(updated, "deactivate", author, record.value, None, at)
        return updated

    def create_override(self, draft: OverrideDraft, author: str = "system") -> OverrideRecord:
        validate_override(draft)
        with self._lock:
            at = self._clock()
            record = self._insert(draft, author, at)
        self._notify(record, "create", at)
        return record

    def update_override(self, override_id: int, author: str = "system", **changes: Any) -> OverrideRecord:
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidOverrideError(f"Cannot update override fields: {sorted(unknown)}")
        with self._lock:
            record = self._require(override_id)
            validate_override(record.to_draft().model_copy(update=changes))
            at = self._clock()
            updated = record.model_copy(update={**changes, "updated_at": at, "author": author})
            self._records[override_id] = updated
            self._log_action(updated, "update", author, record.value, updated.value, at)
        self._notify(updated, "update", at)
        return updated

    def deactivate_override(self, override_id: int, author: str = "system") -> OverrideRecord:
        with self._lock:
            at = self._clock()
            updated = self._deactivate(self._require(override_id), author, at)
        self._notify(updated, "deactivate", at)
        return updated

    def delete_override(self, override_id: int, author: str = "system") -> None:
        with self._lock:
            record = self._require(override_id)
            at = self._clock()
            del self._records[override_id]
            self._log_action(record, "delete", author, record.value, None, at)
        self._notify(record, "delete", at)

    def apply_changes(
        self,
        deactivate_ids: Sequence[int],
        drafts: Sequence[OverrideDraft],
        author: str = "system",
    ) -> List[OverrideRecord]:
        for draft in drafts:
            validate_override(draft)
        events = []
        with self._lock:
            at = self._clock()
            for override_id in deactivate_ids:
                events.append((self._deactivate(self._require(override_id), author, at), "deactivate"))
            created = [self._insert(draft, author, at) for draft in drafts]
            events.extend((record, "create") for record in created)
        for record, action in events:
            self._notify(record, action, at)
        return created

    def record_version(
        self,
        context: RulesetContext,
        version_hash: str,
        overrides: Sequence[OverrideRecord],
        notes: Optional[str] = None,
        author: str = "system",
    ) -> RulesetVersionRecord:
        with self._lock:
            history = self._versions.setdefault(context.key, [])
            record = RulesetVersionRecord(
                context_key=context.key,
                version=len(history) + 1,
                version_hash=version_hash,
                notes=notes,
                overrides=tuple(overrides),
                created_by=author,
                created_at=self._clock(),
            )
            history.append(record)
            return record

    def get_version(self, context: RulesetContext, version: int) -> Optional[RulesetVersionRecord]:
        with self._lock:
            for record in self._versions.get(context.key, []):
                if record.version == version:
                    return record
            return None

    def list_versions(self, context: RulesetContext) -> List[RulesetVersionRecord]:
        with self._lock:
            return list(self._versions.get(context.key, []))

    def audit_log(self, override_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._log if override_id is None or e["override_id"] == override_id]
