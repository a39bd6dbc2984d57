#!/usr/bin/env python3
"""
Request models for API endpoints.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from audit_engine.metadata_source import AppMetadata
from audit_engine.ruleset.models import OverrideDraft, RulesetContext


class PublishRequest(BaseModel):
    """Request to publish overrides for a context."""
    context: RulesetContext
    overrides: List[OverrideDraft] = Field(..., min_length=1)
    notes: Optional[str] = None
    author: str = Field(default="system", description="Who is publishing")


class RollbackRequest(BaseModel):
    """Request to restore a previously published version."""
    context: RulesetContext
    to_version: int = Field(..., ge=1, description="Version number to restore")
    author: str = Field(default="system")


class EvaluateRequest(BaseModel):
    """Request to audit metadata supplied in the body."""
    app_id: Optional[str] = None
    context: RulesetContext
    locale_set: List[str] = Field(..., min_length=1)
    metadata: Dict[str, Optional[AppMetadata]] = Field(
        default_factory=dict,
        description="Per-locale metadata; missing or null locales are reported unavailable"
    )


class RunAuditRequest(BaseModel):
    """Request to audit an app by fetching its metadata."""
    app_id: str
    context: RulesetContext
    locale_set: List[str] = Field(..., min_length=1)
