from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import select, and_, or_, func

from database.models import RulesetOverride, OverrideAuditLog, RulesetVersion
from database.repositories.base import BaseRepository


class OverrideRepository(BaseRepository):
    def get_override(self, override_id: int) -> Optional[RulesetOverride]:
        return self.db.get(RulesetOverride, override_id)

    def list_active(self, scope_keys: Iterable[Tuple[str, Optional[str]]]) -> List[RulesetOverride]:
        """Active rows whose (scope, scope_key) is one of scope_keys."""
        clauses = []
        for scope, scope_key in scope_keys:
            if scope_key is None:
                clauses.append(and_(RulesetOverride.scope == scope, RulesetOverride.scope_key.is_(None)))
            else:
                clauses.append(and_(RulesetOverride.scope == scope, RulesetOverride.scope_key == scope_key))
        if not clauses:
            return []
        stmt = (
            select(RulesetOverride)
            .where(RulesetOverride.active.is_(True))
            .where(or_(*clauses))
            .order_by(RulesetOverride.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_override(self, row: RulesetOverride) -> RulesetOverride:
        self.db.add(row)
        self.db.flush()
        return row

    def delete_override(self, row: RulesetOverride) -> None:
        self.db.delete(row)
        self.db.flush()

    def add_audit_entry(self, override_id: int, action: str, author: str,
                        old_value: Any, new_value: Any, changed_at) -> OverrideAuditLog:
        entry = OverrideAuditLog(
            override_id=override_id,
            action=action,
            author=author,
            old_value=old_value,
            new_value=new_value,
            changed_at=changed_at,
        )
        self.db.add(entry)
        return entry

    def list_audit_entries(self, override_id: Optional[int] = None) -> List[OverrideAuditLog]:
        stmt = select(OverrideAuditLog).order_by(OverrideAuditLog.id)
        if override_id is not None:
            stmt = stmt.where(OverrideAuditLog.override_id == override_id)
        return list(self.db.execute(stmt).scalars().all())

    def next_version_number(self, context_key: str) -> int:
        stmt = select(func.max(RulesetVersion.version)).where(RulesetVersion.context_key == context_key)
        current = self.db.execute(stmt).scalar()
        return (current or 0) + 1

    def add_version(self, row: RulesetVersion) -> RulesetVersion:
        self.db.add(row)
        self.db.flush()
        return row

    def get_version(self, context_key: str, version: int) -> Optional[RulesetVersion]:
        stmt = select(RulesetVersion).where(
            RulesetVersion.context_key == context_key,
            RulesetVersion.version == version,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_versions(self, context_key: str) -> List[RulesetVersion]:
        stmt = (
            select(RulesetVersion)
            .where(RulesetVersion.context_key == context_key)
            .order_by(RulesetVersion.version)
        )
        return list(self.db.execute(stmt).scalars().all())
