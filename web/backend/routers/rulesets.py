#!/usr/bin/env python3
"""
Ruleset endpoints - preview merged rulesets, publish and roll back overrides.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from audit_engine.ruleset.models import RulesetContext
from audit_engine.ruleset.service import MergeService
from ..dependencies import get_merge_service
from ..models.requests import PublishRequest, RollbackRequest
from ..models.responses import RulesetPreviewResponse, VersionResponse, VersionSummary

router = APIRouter(prefix="/api/v1/rulesets", tags=["rulesets"])


@router.post("/preview", response_model=RulesetPreviewResponse)
def preview_ruleset(context: RulesetContext, merge_service: MergeService = Depends(get_merge_service)):
    """
    Preview the merged ruleset for a context.

    Served through the ruleset cache, which every override change invalidates;
    conflicting overrides return 409.
    """
    ruleset = merge_service.preview_merge(context)
    dumped = ruleset.model_dump(mode="json")
    return RulesetPreviewResponse(
        context_key=context.key,
        version_hash=ruleset.version_hash,
        base_version=ruleset.base_version,
        degraded=ruleset.degraded,
        warnings=list(ruleset.warnings),
        contributing_override_ids=list(ruleset.contributing_override_ids),
        entries=dumped["entries"],
    )


@router.post("/publish", response_model=VersionResponse)
def publish_overrides(body: PublishRequest, merge_service: MergeService = Depends(get_merge_service)):
    """
    Publish overrides for a context.

    Each override replaces the active one with the same scope, scope key,
    dimension and key. Returns the new version number.
    """
    version = merge_service.publish(body.context, body.overrides, notes=body.notes, author=body.author)
    return VersionResponse(context_key=body.context.key, version=version)


@router.post("/rollback", response_model=VersionResponse)
def rollback_ruleset(body: RollbackRequest, merge_service: MergeService = Depends(get_merge_service)):
    """Restore the override set recorded in a previous version."""
    version = merge_service.rollback(body.context, body.to_version, author=body.author)
    return VersionResponse(context_key=body.context.key, version=version)


@router.get("/versions", response_model=List[VersionSummary])
def list_versions(
    vertical: Optional[str] = None,
    market: Optional[str] = None,
    organization_id: Optional[str] = None,
    app_id: Optional[str] = None,
    merge_service: MergeService = Depends(get_merge_service),
):
    """List published versions for a context, oldest first."""
    context = RulesetContext(vertical=vertical, market=market, organization_id=organization_id, app_id=app_id)
    return [
        VersionSummary(
            version=v.version,
            version_hash=v.version_hash,
            notes=v.notes,
            override_count=len(v.overrides),
            created_by=v.created_by,
            created_at=v.created_at,
        )
        for v in merge_service.store.list_versions(context)
    ]
