#!/usr/bin/env python3
"""
Audit endpoints - run audits and browse stored snapshots.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from audit_engine.app_context import AppContext
from audit_engine.audit.diff import SnapshotDiff, diff_snapshots
from audit_engine.audit.models import AuditSnapshot
from audit_engine.audit.orchestrator import AuditOrchestrator
from audit_engine.audit.store import SnapshotStore
from ..dependencies import get_app_context, get_orchestrator, get_snapshot_store
from ..exceptions import MetadataSourceNotConfiguredException, SnapshotNotFoundException
from ..models.requests import EvaluateRequest, RunAuditRequest
from ..models.responses import SnapshotSummary

router = APIRouter(prefix="/api/v1/audits", tags=["audits"])


@router.post("/evaluate", response_model=AuditSnapshot)
def evaluate_audit(body: EvaluateRequest, orchestrator: AuditOrchestrator = Depends(get_orchestrator)):
    """
    Audit metadata supplied in the request body.

    Failed audits are returned with status "failed" and a reason, not as errors.
    """
    return orchestrator.evaluate(
        body.context,
        body.locale_set,
        body.metadata,
        app_id=body.app_id,
    )


@router.post("/run", response_model=AuditSnapshot)
async def run_audit(body: RunAuditRequest, ctx: AppContext = Depends(get_app_context)):
    """Fetch metadata for every requested locale and audit it."""
    if ctx.metadata_source is None:
        raise MetadataSourceNotConfiguredException("No metadata source URL configured")
    return await ctx.orchestrator.run(body.app_id, body.context, body.locale_set, ctx.metadata_source)


@router.get("/snapshots", response_model=List[SnapshotSummary])
def list_snapshots(
    app_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """List stored snapshots, most recent first."""
    return [
        SnapshotSummary(
            content_hash=s.content_hash,
            app_id=s.app_id,
            context_key=s.context.key,
            status=s.status.value,
            overall_score=s.overall_score,
            ruleset_version_hash=s.ruleset_version_hash,
            degraded=s.degraded,
            created_at=s.created_at,
        )
        for s in store.list_snapshots(app_id=app_id, limit=limit)
    ]


@router.get("/snapshots/{content_hash}", response_model=AuditSnapshot)
def get_snapshot(content_hash: str, store: SnapshotStore = Depends(get_snapshot_store)):
    snapshot = store.get(content_hash)
    if snapshot is None:
        raise SnapshotNotFoundException(f"Snapshot {content_hash} not found")
    return snapshot


@router.get("/diff", response_model=SnapshotDiff)
def diff(
    before: str,
    after: str,
    tolerance: float = Query(1.0, ge=0),
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """Compare two stored snapshots; regressions are drops larger than tolerance."""
    old, new = store.get(before), store.get(after)
    if old is None or new is None:
        missing = before if old is None else after
        raise SnapshotNotFoundException(f"Snapshot {missing} not found")
    return diff_snapshots(old, new, tolerance=tolerance)
