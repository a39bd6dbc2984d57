"""SQL-backed append-only snapshot store."""
import contextlib
import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_engine.audit.models import AuditSnapshot
from audit_engine.audit.store import SnapshotStore
from audit_engine.exceptions import StoreUnavailableError
from database.models import AuditSnapshotRecord
from database.uow import snapshot_uow

logger = logging.getLogger(__name__)


class SqlSnapshotStore(SnapshotStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextlib.contextmanager
    def _uow(self):
        try:
            with snapshot_uow(self._session_factory) as repo:
                yield repo
        except SQLAlchemyError as e:
            logger.error(f"Snapshot store query failed: {e}")
            raise StoreUnavailableError(f"Snapshot store unavailable: {e}") from e

    def append(self, snapshot: AuditSnapshot) -> None:
        with self._uow() as repo:
            repo.add_snapshot(AuditSnapshotRecord(
                content_hash=snapshot.content_hash,
                app_id=snapshot.app_id,
                context_key=snapshot.context.key,
                status=snapshot.status.value,
                overall_score=snapshot.overall_score,
                ruleset_version_hash=snapshot.ruleset_version_hash,
                degraded=snapshot.degraded,
                payload=snapshot.model_dump(mode="json"),
                created_at=snapshot.created_at,
            ))
        logger.debug(f"Stored snapshot {snapshot.content_hash[:12]} for {snapshot.context.key}")

    def list_snapshots(
        self,
        app_id: Optional[str] = None,
        context_key: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditSnapshot]:
        with self._uow() as repo:
            rows = repo.list_snapshots(app_id=app_id, context_key=context_key, limit=limit)
            return [AuditSnapshot.model_validate(row.payload) for row in rows]

    def get(self, content_hash: str) -> Optional[AuditSnapshot]:
        with self._uow() as repo:
            row = repo.get_by_content_hash(content_hash)
            return AuditSnapshot.model_validate(row.payload) if row is not None else None
