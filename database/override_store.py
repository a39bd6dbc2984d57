#!/usr/bin/env python3
"""
SQL-backed override store.

Every public call runs in its own ruleset_uow transaction. Driver and
connection failures surface as StoreUnavailableError so the merge service
can fall back to the built-in ruleset.
"""

import contextlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_engine.exceptions import InvalidOverrideError, StoreUnavailableError
from audit_engine.ruleset.models import (
    SCOPE_ORDER,
    Scope,
    OverrideDraft,
    OverrideRecord,
    RulesetContext,
    RulesetVersionRecord,
)
from audit_engine.ruleset.store import UPDATABLE_FIELDS, OverrideStore, utc_now
from audit_engine.ruleset.validation import validate_override
from database.models import RulesetOverride, RulesetVersion
from database.repositories import OverrideRepository
from database.uow import ruleset_uow

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def row_to_record(row: RulesetOverride) -> OverrideRecord:
    return OverrideRecord(
        id=row.id,
        scope=row.scope,
        scope_key=row.scope_key,
        dimension=row.dimension,
        key=row.key,
        value=row.value,
        weight_multiplier=row.weight_multiplier,
        priority=row.priority,
        active=row.active,
        author=row.author,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def row_to_version(row: RulesetVersion) -> RulesetVersionRecord:
    return RulesetVersionRecord(
        context_key=row.context_key,
        version=row.version,
        version_hash=row.version_hash,
        notes=row.notes,
        overrides=tuple(OverrideRecord.model_validate(o) for o in row.overrides or []),
        created_by=row.created_by,
        created_at=as_utc(row.created_at),
    )


class SqlOverrideStore(OverrideStore):
    def __init__(self, session_factory: Callable[[], Session], clock: Callable[[], datetime] = utc_now):
        super().__init__()
        self._session_factory = session_factory
        self._clock = clock

    @contextlib.contextmanager
    def _uow(self):
        try:
            with ruleset_uow(self._session_factory) as repo:
                yield repo
        except SQLAlchemyError as e:
            logger.error(f"Override store query failed: {e}")
            raise StoreUnavailableError(f"Override store unavailable: {e}") from e

    @staticmethod
    def _require(repo: OverrideRepository, override_id: int) -> RulesetOverride:
        row = repo.get_override(override_id)
        if row is None:
            raise InvalidOverrideError(f"Override {override_id} does not exist")
        return row

    def _insert(self, repo: OverrideRepository, draft: OverrideDraft, author: str, at: datetime) -> OverrideRecord:
        row = repo.add_override(RulesetOverride(
            scope=draft.scope.value,
            scope_key=draft.scope_key,
            dimension=draft.dimension.value,
            key=draft.key,
            value=draft.value,
            weight_multiplier=draft.weight_multiplier,
            priority=draft.priority,
            active=True,
            author=author,
            created_at=at,
            updated_at=at,
        ))
        repo.add_audit_entry(row.id, "create", author, None, row.value, at)
        return row_to_record(row)

    def _deactivate(self, repo: OverrideRepository, row: RulesetOverride, author: str, at: datetime) -> OverrideRecord:
        row.active = False
        row.author = author
        row.updated_at = at
        repo.add_audit_entry(row.id, "deactivate", author, row.value, None, at)
        return row_to_record(row)

    def list_active_overrides(self, context: RulesetContext) -> List[OverrideRecord]:
        scope_keys = [
            (scope.value, context.scope_key_for(scope))
            for scope in SCOPE_ORDER
            if scope == Scope.BASE or context.scope_key_for(scope) is not None
        ]
        with self._uow() as repo:
            return [row_to_record(row) for row in repo.list_active(scope_keys)]

    def get_override(self, override_id: int) -> Optional[OverrideRecord]:
        with self._uow() as repo:
            row = repo.get_override(override_id)
            return row_to_record(row) if row is not None else None

    def create_override(self, draft: OverrideDraft, author: str = "system") -> OverrideRecord:
        validate_override(draft)
        at = self._clock()
        with self._uow() as repo:
            record = self._insert(repo, draft, author, at)
        logger.info(f"Created override {record.id} ({record.scope.value}:{record.scope_key} "
                    f"{record.dimension.value}/{record.key})")
        self._notify(record, "create", at)
        return record

    def update_override(self, override_id: int, author: str = "system", **changes: Any) -> OverrideRecord:
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidOverrideError(f"Cannot update override fields: {sorted(unknown)}")
        at = self._clock()
        with self._uow() as repo:
            row = self._require(repo, override_id)
            current = row_to_record(row)
            validate_override(current.to_draft().model_copy(update=changes))
            for field, value in changes.items():
                setattr(row, field, value)
            row.author = author
            row.updated_at = at
            repo.add_audit_entry(row.id, "update", author, current.value, row.value, at)
            record = row_to_record(row)
        self._notify(record, "update", at)
        return record

    def deactivate_override(self, override_id: int, author: str = "system") -> OverrideRecord:
        at = self._clock()
        with self._uow() as repo:
            record = self._deactivate(repo, self._require(repo, override_id), author, at)
        self._notify(record, "deactivate", at)
        return record

    def delete_override(self, override_id: int, author: str = "system") -> None:
        at = self._clock()
        with self._uow() as repo:
            row = self._require(repo, override_id)
            record = row_to_record(row)
            repo.add_audit_entry(row.id, "delete", author, row.value, None, at)
            repo.delete_override(row)
        self._notify(record, "delete", at)

    def apply_changes(
        self,
        deactivate_ids: Sequence[int],
        drafts: Sequence[OverrideDraft],
        author: str = "system",
    ) -> List[OverrideRecord]:
        for draft in drafts:
            validate_override(draft)
        at = self._clock()
        events = []
        with self._uow() as repo:
            for override_id in deactivate_ids:
                events.append((self._deactivate(repo, self._require(repo, override_id), author, at), "deactivate"))
            created = [self._insert(repo, draft, author, at) for draft in drafts]
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
        with self._uow() as repo:
            row = repo.add_version(RulesetVersion(
                context_key=context.key,
                version=repo.next_version_number(context.key),
                version_hash=version_hash,
                notes=notes,
                overrides=[o.model_dump(mode="json") for o in overrides],
                created_by=author,
                created_at=self._clock(),
            ))
            return row_to_version(row)

    def get_version(self, context: RulesetContext, version: int) -> Optional[RulesetVersionRecord]:
        with self._uow() as repo:
            row = repo.get_version(context.key, version)
            return row_to_version(row) if row is not None else None

    def list_versions(self, context: RulesetContext) -> List[RulesetVersionRecord]:
        with self._uow() as repo:
            return [row_to_version(row) for row in repo.list_versions(context.key)]

    def audit_log(self, override_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._uow() as repo:
            return [
                {
                    "override_id": e.override_id,
                    "action": e.action,
                    "author": e.author,
                    "old_value": e.old_value,
                    "new_value": e.new_value,
                    "changed_at": as_utc(e.changed_at),
                }
                for e in repo.list_audit_entries(override_id)
            ]
