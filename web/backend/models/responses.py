#!/usr/bin/env python3
"""
Response models for API endpoints.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class RulesetPreviewResponse(BaseModel):
    """A merged ruleset as seen by one context."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "context_key": "v=language_learning|m=us|o=|a=",
                "version_hash": "9f2c...",
                "base_version": "2025.11.1",
                "degraded": False,
                "warnings": [],
                "contributing_override_ids": [3, 7],
                "entries": {"token_relevance": {"learn": {"value": 3, "provenance": "vertical"}}}
            }
        }
    )

    context_key: str
    version_hash: str
    base_version: str
    degraded: bool = False
    warnings: List[str] = Field(default_factory=list)
    contributing_override_ids: List[int] = Field(default_factory=list)
    entries: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class VersionResponse(BaseModel):
    """Result of a publish or rollback."""
    success: bool = True
    context_key: str
    version: int


class VersionSummary(BaseModel):
    version: int
    version_hash: str
    notes: Optional[str] = None
    override_count: int
    created_by: str
    created_at: datetime


class SnapshotSummary(BaseModel):
    """Headline fields of a stored snapshot."""
    content_hash: str
    app_id: Optional[str] = None
    context_key: str
    status: str
    overall_score: Optional[float] = Field(None, ge=0, le=100)
    ruleset_version_hash: Optional[str] = None
    degraded: bool = False
    created_at: datetime
