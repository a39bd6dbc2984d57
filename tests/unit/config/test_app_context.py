"""
Tests for AppContext wiring.
"""
import pytest

from audit_engine.app_context import AppContext
from audit_engine.audit.store import InMemorySnapshotStore
from audit_engine.config_loader import AppConfig, CacheConfig, DatabaseConfig, MetadataSourceConfig
from audit_engine.metadata_source import HttpMetadataSource
from audit_engine.ruleset.models import Dimension, RulesetContext, Scope
from audit_engine.ruleset.store import InMemoryOverrideStore
from database.override_store import SqlOverrideStore
from database.snapshot_store import SqlSnapshotStore
from tests import make_draft


def test_in_memory_context():
    ctx = AppContext.build_in_memory()

    assert isinstance(ctx.override_store, InMemoryOverrideStore)
    assert isinstance(ctx.snapshot_store, InMemorySnapshotStore)
    assert ctx.cache is not None
    assert ctx.metadata_source is None
    assert ctx.orchestrator.merge_service is ctx.merge_service


def test_cache_can_be_disabled():
    ctx = AppContext.build_in_memory(AppConfig(cache=CacheConfig(enabled=False)))

    assert ctx.cache is None
    assert ctx.merge_service.cache is None


def test_metadata_source_built_from_url():
    config = AppConfig(metadata_source=MetadataSourceConfig(url="http://metadata:9000/"))

    ctx = AppContext.build_in_memory(config)

    assert isinstance(ctx.metadata_source, HttpMetadataSource)
    assert ctx.metadata_source.base_url == "http://metadata:9000"


def test_store_changes_invalidate_cached_ruleset():
    ctx = AppContext.build_in_memory()
    context = RulesetContext(app_id="app-1")
    before = ctx.merge_service.resolve(context)

    ctx.override_store.create_override(
        make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 3, scope_key="app-1"))

    after = ctx.merge_service.resolve(context)
    assert after.version_hash != before.version_hash
    assert after.token_relevance("spanish") == 3


@pytest.mark.db
def test_database_backed_context():
    config = AppConfig(database=DatabaseConfig(url="sqlite://"))

    ctx = AppContext.build(config)

    assert isinstance(ctx.override_store, SqlOverrideStore)
    assert isinstance(ctx.snapshot_store, SqlSnapshotStore)
    assert ctx.merge_service.resolve(RulesetContext()).degraded is False
