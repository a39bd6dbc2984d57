from typing import List, Optional

from sqlalchemy import select

from database.models import AuditSnapshotRecord
from database.repositories.base import BaseRepository


class SnapshotRepository(BaseRepository):
    def add_snapshot(self, row: AuditSnapshotRecord) -> AuditSnapshotRecord:
        self.db.add(row)
        self.db.flush()
        return row

    def list_snapshots(
        self,
        app_id: Optional[str] = None,
        context_key: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditSnapshotRecord]:
        stmt = select(AuditSnapshotRecord)
        if app_id is not None:
            stmt = stmt.where(AuditSnapshotRecord.app_id == app_id)
        if context_key is not None:
            stmt = stmt.where(AuditSnapshotRecord.context_key == context_key)
        stmt = stmt.order_by(AuditSnapshotRecord.id.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_by_content_hash(self, content_hash: str) -> Optional[AuditSnapshotRecord]:
        stmt = (
            select(AuditSnapshotRecord)
            .where(AuditSnapshotRecord.content_hash == content_hash)
            .order_by(AuditSnapshotRecord.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()
