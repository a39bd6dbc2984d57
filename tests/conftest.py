"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest

from audit_engine.audit.orchestrator import AuditOrchestrator
from audit_engine.audit.store import InMemorySnapshotStore
from audit_engine.cache.ruleset_cache import RulesetCacheService
from audit_engine.config_loader import AppConfig
from audit_engine.ruleset.models import RulesetContext
from audit_engine.ruleset.service import MergeService
from audit_engine.ruleset.store import InMemoryOverrideStore
from tests import fixed_clock


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as using a SQLite database (deselect with '-m \"not db\"')"
    )


@pytest.fixture
def education_context():
    return RulesetContext(vertical="Education", market="US", organization_id="org-1", app_id="app-1")


@pytest.fixture
def override_store():
    return InMemoryOverrideStore(clock=fixed_clock)


@pytest.fixture
def ruleset_cache():
    return RulesetCacheService(ttl_seconds=300)


@pytest.fixture
def merge_service(override_store, ruleset_cache):
    return MergeService(override_store, cache=ruleset_cache)


@pytest.fixture
def snapshot_store():
    return InMemorySnapshotStore()


@pytest.fixture
def orchestrator(merge_service, snapshot_store):
    return AuditOrchestrator(merge_service, config=AppConfig(), snapshot_store=snapshot_store, clock=fixed_clock)
