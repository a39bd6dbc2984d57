"""Snapshot Store - Append-only persistence of audit snapshots."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from audit_engine.audit.models import AuditSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore(ABC):
    @abstractmethod
    def append(self, snapshot: AuditSnapshot) -> None:
        pass

    @abstractmethod
    def list_snapshots(
        self,
        app_id: Optional[str] = None,
        context_key: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditSnapshot]:
        """Most recent first."""

    @abstractmethod
    def get(self, content_hash: str) -> Optional[AuditSnapshot]:
        pass

    def latest(self, app_id: Optional[str] = None, context_key: Optional[str] = None) -> Optional[AuditSnapshot]:
        snapshots = self.list_snapshots(app_id=app_id, context_key=context_key, limit=1)
        return snapshots[0] if snapshots else None


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._snapshots: List[AuditSnapshot] = []

    def append(self, snapshot: AuditSnapshot) -> None:
        with self._lock:
            self._snapshots.append(snapshot)
        logger.debug(f"Stored snapshot {snapshot.content_hash[:12]} for {snapshot.context.key}")

    def list_snapshots(
        self,
        app_id: Optional[str] = None,
        context_key: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditSnapshot]:
        with self._lock:
            matching = [
                s for s in reversed(self._snapshots)
                if (app_id is None or s.app_id == app_id)
                and (context_key is None or s.context.key == context_key)
            ]
        return matching[:limit]

    def get(self, content_hash: str) -> Optional[AuditSnapshot]:
        with self._lock:
            for snapshot in reversed(self._snapshots):
                if snapshot.content_hash == content_hash:
                    return snapshot
        return None
