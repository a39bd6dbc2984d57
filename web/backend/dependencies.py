#!/usr/bin/env python3
"""
FastAPI dependencies for dependency injection.
"""

from fastapi import Request

from audit_engine.app_context import AppContext
from audit_engine.audit.orchestrator import AuditOrchestrator
from audit_engine.audit.store import SnapshotStore
from audit_engine.ruleset.service import MergeService


def get_app_context(request: Request) -> AppContext:
    """
    FastAPI dependency that returns the wired application context.

    Usage:
        @router.get("/endpoint")
        def my_endpoint(ctx: AppContext = Depends(get_app_context)):
            ...
    """
    return request.app.state.app_context


def get_merge_service(request: Request) -> MergeService:
    return get_app_context(request).merge_service


def get_orchestrator(request: Request) -> AuditOrchestrator:
    return get_app_context(request).orchestrator


def get_snapshot_store(request: Request) -> SnapshotStore:
    return get_app_context(request).snapshot_store
