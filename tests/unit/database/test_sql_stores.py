"""
Tests for the SQLAlchemy-backed override and snapshot stores.

Each test gets a fresh in-memory SQLite database.
"""
import pytest

from audit_engine.audit.orchestrator import AuditOrchestrator
from audit_engine.exceptions import InvalidOverrideError, StoreUnavailableError
from audit_engine.ruleset.models import Dimension, RulesetContext, Scope
from audit_engine.ruleset.service import MergeService
from database.database import build_session_factory
from database.override_store import SqlOverrideStore
from database.snapshot_store import SqlSnapshotStore
from tests import FIXED_TIME, SAMPLE_METADATA, fixed_clock, make_draft

pytestmark = pytest.mark.db


@pytest.fixture
def session_factory():
    return build_session_factory("sqlite://")


@pytest.fixture
def sql_override_store(session_factory):
    return SqlOverrideStore(session_factory, clock=fixed_clock)


@pytest.fixture
def sql_snapshot_store(session_factory):
    return SqlSnapshotStore(session_factory)


@pytest.fixture
def context():
    return RulesetContext(vertical="education", market="US", app_id="app-1")


class TestSqlOverrideStore:
    def test_create_and_get(self, sql_override_store):
        record = sql_override_store.create_override(
            make_draft(Scope.VERTICAL, Dimension.TOKEN_RELEVANCE, "spanish", 3, scope_key="education"),
            author="alice",
        )

        loaded = sql_override_store.get_override(record.id)
        assert loaded == record
        assert loaded.scope == Scope.VERTICAL
        assert loaded.created_at == FIXED_TIME
        assert loaded.author == "alice"

    def test_list_active_filters_by_context(self, sql_override_store, context):
        sql_override_store.create_override(make_draft(Scope.BASE, Dimension.STOPWORD, "app", True))
        sql_override_store.create_override(
            make_draft(Scope.VERTICAL, Dimension.STOPWORD, "learn", True, scope_key="finance"))
        sql_override_store.create_override(
            make_draft(Scope.MARKET, Dimension.STOPWORD, "daily", True, scope_key="us"))
        other = sql_override_store.create_override(
            make_draft(Scope.APP, Dimension.STOPWORD, "lessons", True, scope_key="app-1"))
        sql_override_store.deactivate_override(other.id)

        keys = [o.key for o in sql_override_store.list_active_overrides(context)]
        assert keys == ["app", "daily"]

    def test_update_and_audit_log(self, sql_override_store):
        record = sql_override_store.create_override(
            make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 1, scope_key="app-1"))

        updated = sql_override_store.update_override(record.id, author="bob", value=2)

        assert updated.value == 2
        with pytest.raises(InvalidOverrideError):
            sql_override_store.update_override(record.id, value=7)
        with pytest.raises(InvalidOverrideError):
            sql_override_store.update_override(999, value=1)
        log = sql_override_store.audit_log(record.id)
        assert [e["action"] for e in log] == ["create", "update"]
        assert (log[1]["old_value"], log[1]["new_value"]) == (1, 2)
        assert log[1]["changed_at"] == FIXED_TIME

    def test_delete_keeps_audit_trail(self, sql_override_store):
        record = sql_override_store.create_override(
            make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 1, scope_key="app-1"))

        sql_override_store.delete_override(record.id)

        assert sql_override_store.get_override(record.id) is None
        assert [e["action"] for e in sql_override_store.audit_log(record.id)] == ["create", "delete"]

    def test_listeners_notified_after_commit(self, sql_override_store):
        changes = []
        sql_override_store.subscribe(changes.append)

        created = sql_override_store.apply_changes([], [
            make_draft(Scope.APP, Dimension.STOPWORD, "daily", True, scope_key="app-1"),
        ])
        sql_override_store.apply_changes([created[0].id], [])

        assert [c.action for c in changes] == ["create", "deactivate"]

    def test_versions(self, sql_override_store, context):
        record = sql_override_store.create_override(
            make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 3, scope_key="app-1"))

        first = sql_override_store.record_version(context, "hash-1", [record], notes="initial", author="alice")
        second = sql_override_store.record_version(context, "hash-2", [])

        assert (first.version, second.version) == (1, 2)
        assert sql_override_store.get_version(context, 1).overrides == (record,)
        assert sql_override_store.get_version(context, 3) is None
        assert [v.version_hash for v in sql_override_store.list_versions(context)] == ["hash-1", "hash-2"]


class TestMergeServiceOnSql:
    def test_publish_and_rollback(self, sql_override_store, context):
        service = MergeService(sql_override_store)

        service.publish(context, [make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 3, scope_key="app-1")])
        service.publish(context, [make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 1, scope_key="app-1")])
        assert service.resolve(context).token_relevance("spanish") == 1

        assert service.rollback(context, 1) == 3
        assert service.resolve(context).token_relevance("spanish") == 3

    def test_unreachable_database_degrades_to_builtin(self, context):
        factory = build_session_factory("sqlite:////nonexistent/dir/audit.db", create_tables=False)
        store = SqlOverrideStore(factory)

        with pytest.raises(StoreUnavailableError):
            store.list_active_overrides(context)

        ruleset = MergeService(store).resolve(context)
        assert ruleset.degraded is True
        assert ruleset.warnings


class TestSqlSnapshotStore:
    def test_append_and_reload(self, sql_override_store, sql_snapshot_store):
        context = RulesetContext(vertical="Education", app_id="app-1")
        orchestrator = AuditOrchestrator(
            MergeService(sql_override_store), snapshot_store=sql_snapshot_store, clock=fixed_clock)

        snapshot = orchestrator.evaluate(context, ["en-US", "es-US"], SAMPLE_METADATA)

        loaded = sql_snapshot_store.get(snapshot.content_hash)
        assert loaded is not None
        assert loaded.content_hash == snapshot.content_hash
        assert loaded.with_content_hash().content_hash == snapshot.content_hash
        assert loaded.created_at == FIXED_TIME

    def test_list_most_recent_first(self, sql_override_store, sql_snapshot_store):
        orchestrator = AuditOrchestrator(
            MergeService(sql_override_store), snapshot_store=sql_snapshot_store, clock=fixed_clock)
        first = orchestrator.evaluate(RulesetContext(app_id="app-1"), ["en-US"], SAMPLE_METADATA)
        second = orchestrator.evaluate(RulesetContext(app_id="app-2"), ["en-US"], SAMPLE_METADATA)

        assert [s.app_id for s in sql_snapshot_store.list_snapshots()] == ["app-2", "app-1"]
        assert sql_snapshot_store.latest(app_id="app-1").content_hash == first.content_hash
        assert sql_snapshot_store.list_snapshots(limit=1)[0].content_hash == second.content_hash
        assert sql_snapshot_store.get("missing") is None
