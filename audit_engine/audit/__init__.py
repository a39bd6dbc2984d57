"""Audit Module - Orchestrates audits and stores immutable snapshots."""
from audit_engine.audit.models import AuditRun, AuditSnapshot, AuditState, LocaleResult, LocaleStatus
from audit_engine.audit.store import InMemorySnapshotStore, SnapshotStore
from audit_engine.audit.orchestrator import AuditOrchestrator, LocaleCancellation
from audit_engine.audit.diff import SnapshotDiff, diff_snapshots

__all__ = [
    'AuditRun', 'AuditSnapshot', 'AuditState', 'LocaleResult', 'LocaleStatus',
    'InMemorySnapshotStore', 'SnapshotStore', 'AuditOrchestrator', 'LocaleCancellation',
    'SnapshotDiff', 'diff_snapshots',
]
