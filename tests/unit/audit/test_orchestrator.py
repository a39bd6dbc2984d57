"""
Tests for AuditOrchestrator: determinism, per-locale degradation and audit failures.
"""
import asyncio
import threading
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from audit_engine.audit.models import AuditRun, AuditState, LocaleStatus
from audit_engine.audit.orchestrator import AuditOrchestrator, LocaleCancellation
from audit_engine.audit.store import InMemorySnapshotStore
from audit_engine.exceptions import InvalidStateTransitionError, StoreUnavailableError
from audit_engine.metadata_source import AppMetadata, NotAvailable, StaticMetadataSource
from audit_engine.ruleset.models import Dimension, Scope
from audit_engine.ruleset.service import MergeService
from audit_engine.ruleset.store import InMemoryOverrideStore
from tests import SAMPLE_METADATA, fixed_clock, make_draft, make_record

LOCALES = ["en-US", "es-US"]


class LegacyOverrideStore(InMemoryOverrideStore):
    """Serves fixed records without validating them."""

    def __init__(self, records):
        super().__init__(clock=fixed_clock)
        self._legacy = list(records)

    def list_active_overrides(self, context):
        return list(self._legacy)


class TestCompleteAudit:
    def test_two_locale_audit(self, orchestrator, education_context, snapshot_store):
        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        assert snapshot.status == AuditState.COMPLETE
        assert snapshot.app_id == "app-1"
        assert len(snapshot.formula_results) == 16
        assert [r.status for r in snapshot.locale_results] == [LocaleStatus.COMPLETE, LocaleStatus.COMPLETE]
        assert snapshot.overall_score is not None
        assert snapshot.ruleset_version_hash
        assert snapshot.degraded is False
        assert snapshot_store.latest(app_id="app-1") == snapshot

    def test_english_title_scores(self, orchestrator, education_context):
        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        scores = {r.formula_id: r.score for r in snapshot.results_for("en-US")}
        assert scores["title_character_usage"] == 100.0
        assert scores["title_unique_keywords"] == 97.5

    def test_combos_stay_within_their_locale(self, orchestrator, education_context):
        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        tokens_by_locale = {}
        for token in snapshot.tokens:
            tokens_by_locale.setdefault(token.locale, set()).add(token.text)
        assert snapshot.combos
        for combo in snapshot.combos:
            assert set(combo.tokens) <= tokens_by_locale[combo.locale]

    def test_state_history(self, orchestrator, education_context):
        run = AuditRun()

        orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA, run=run)

        assert run.history == [
            AuditState.PENDING, AuditState.CLASSIFYING, AuditState.COMBINING,
            AuditState.SCORING, AuditState.COMPLETE,
        ]
        assert run.is_terminal


class TestDeterminism:
    def test_repeated_runs_produce_identical_snapshots(self, orchestrator, education_context):
        snapshots = [orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA) for _ in range(3)]

        assert len({s.content_hash for s in snapshots}) == 1
        assert snapshots[0].model_dump() == snapshots[2].model_dump()

    def test_content_hash_ignores_created_at(self, merge_service, education_context):
        early = AuditOrchestrator(merge_service, clock=lambda: datetime(2025, 1, 1, tzinfo=timezone.utc))
        late = AuditOrchestrator(merge_service, clock=lambda: datetime(2026, 1, 1, tzinfo=timezone.utc))

        a = early.evaluate(education_context, LOCALES, SAMPLE_METADATA)
        b = late.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        assert a.created_at != b.created_at
        assert a.content_hash == b.content_hash

    def test_ruleset_change_changes_hash(self, orchestrator, merge_service, education_context):
        before = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)
        merge_service.publish(education_context, [
            make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 3, scope_key="app-1"),
        ])
        after = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        assert before.ruleset_version_hash != after.ruleset_version_hash
        assert before.content_hash != after.content_hash


class TestLocaleDegradation:
    def test_missing_locale_is_unavailable(self, orchestrator, education_context):
        snapshot = orchestrator.evaluate(education_context, ["en-US", "fr-FR"], {"en-US": SAMPLE_METADATA["en-US"]})

        assert snapshot.status == AuditState.COMPLETE
        statuses = {r.locale: r for r in snapshot.locale_results}
        assert statuses["fr-FR"].status == LocaleStatus.UNAVAILABLE
        assert statuses["fr-FR"].reason == "no metadata supplied"
        assert len(snapshot.formula_results) == 8

    def test_not_available_marker_is_respected(self, orchestrator, education_context):
        metadata = dict(SAMPLE_METADATA, **{"es-US": NotAvailable("es-US", "delisted")})

        snapshot = orchestrator.evaluate(education_context, LOCALES, metadata)

        assert snapshot.locale_results[1].reason == "delisted"

    def test_cancelled_locale_is_discarded(self, orchestrator, education_context):
        cancellation = LocaleCancellation()
        cancellation.cancel("es-US")

        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA, cancellation)

        assert snapshot.status == AuditState.COMPLETE
        assert snapshot.locale_results[1].status == LocaleStatus.CANCELLED
        assert {t.locale for t in snapshot.tokens} == {"en-US"}
        assert {r.locale for r in snapshot.formula_results} == {"en-US"}

    def test_missing_formula_input_only_warns(self, orchestrator, education_context):
        metadata = {"en-US": {"title": "Learn Spanish Daily Lessons!"}}

        snapshot = orchestrator.evaluate(education_context, ["en-US"], metadata)

        assert snapshot.status == AuditState.COMPLETE
        assert any("subtitle" in w for w in snapshot.warnings)
        assert snapshot.locale_results[0].warnings

    def test_malformed_locale_payload_degrades_only_that_locale(self, orchestrator, education_context):
        metadata = dict(SAMPLE_METADATA, **{"es-US": {"title": ["not", "a", "string"]}})

        snapshot = orchestrator.evaluate(education_context, LOCALES, metadata)

        assert snapshot.status == AuditState.COMPLETE
        assert snapshot.locale_results[0].status == LocaleStatus.COMPLETE
        assert snapshot.locale_results[1].status == LocaleStatus.UNAVAILABLE
        assert snapshot.locale_results[1].reason == "invalid metadata: title"
        assert {r.locale for r in snapshot.formula_results} == {"en-US"}

    def test_non_mapping_payload_is_unavailable(self, orchestrator, education_context):
        metadata = dict(SAMPLE_METADATA, **{"es-US": "Aprende"})

        snapshot = orchestrator.evaluate(education_context, LOCALES, metadata)

        assert snapshot.status == AuditState.COMPLETE
        assert snapshot.locale_results[1].status == LocaleStatus.UNAVAILABLE
        assert snapshot.locale_results[1].reason.startswith("invalid metadata")

    def test_formula_param_breaking_a_formula_only_warns(self, education_context):
        # Stored before formula params were range checked
        store = LegacyOverrideStore([make_record(
            1, Scope.BASE, Dimension.FORMULA_PARAM, "title_character_usage.target_ratio", 0,
        )])
        orchestrator = AuditOrchestrator(MergeService(store), clock=fixed_clock)
        run = AuditRun()

        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA, run=run)

        assert snapshot.status == AuditState.COMPLETE
        assert run.state == AuditState.COMPLETE
        assert "title_character_usage" not in {r.formula_id for r in snapshot.formula_results}
        assert any("title_character_usage could not be computed" in w for w in snapshot.warnings)

    def test_no_locale_with_metadata_fails(self, orchestrator, education_context, snapshot_store):
        snapshot = orchestrator.evaluate(education_context, ["fr-FR"], {})

        assert snapshot.status == AuditState.FAILED
        assert snapshot.failure_reason == "No locale produced metadata to audit"
        assert snapshot.overall_score is None
        assert snapshot_store.list_snapshots() == []


class TestAuditFailures:
    def test_conflicting_overrides_fail_audit(self, orchestrator, override_store, education_context):
        override_store.create_override(make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "learn", 1, scope_key="app-1"))
        override_store.create_override(make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "learn", 2, scope_key="app-1"))
        run = AuditRun()

        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA, run=run)

        assert snapshot.status == AuditState.FAILED
        assert snapshot.error_type == "ConfigConflictError"
        assert snapshot.overall_score is None
        assert snapshot.formula_results == ()
        assert run.history == [AuditState.PENDING, AuditState.FAILED]

    def test_unsafe_stored_pattern_fails_audit(self, education_context):
        # Written before pattern validation existed, so the store still holds it
        store = LegacyOverrideStore([make_record(
            1, Scope.APP, Dimension.INTENT_PATTERN, "evil",
            {"pattern": "(a+)+", "match_type": "regex", "intent_type": "commercial"},
            scope_key="app-1",
        )])
        orchestrator = AuditOrchestrator(MergeService(store), clock=fixed_clock)

        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        assert snapshot.status == AuditState.FAILED
        assert snapshot.error_type == "UnsafePatternError"
        assert snapshot.ruleset_version_hash is not None


class TestSnapshotPersistence:
    def test_store_outage_still_returns_snapshot(self, merge_service, education_context):
        class UnreachableSnapshotStore(InMemorySnapshotStore):
            def append(self, snapshot):
                raise StoreUnavailableError("snapshot db down")

        orchestrator = AuditOrchestrator(merge_service, snapshot_store=UnreachableSnapshotStore(), clock=fixed_clock)

        snapshot = orchestrator.evaluate(education_context, LOCALES, SAMPLE_METADATA)

        assert snapshot.status == AuditState.COMPLETE
        assert snapshot.content_hash
        assert snapshot.overall_score is not None


class TestAuditRun:
    def test_illegal_transition_rejected(self):
        run = AuditRun()

        with pytest.raises(InvalidStateTransitionError):
            run.transition(AuditState.COMPLETE)

    def test_terminal_states_accept_nothing(self):
        run = AuditRun()
        run.transition(AuditState.FAILED, "boom")

        assert run.failure_reason == "boom"
        with pytest.raises(InvalidStateTransitionError):
            run.transition(AuditState.CLASSIFYING)


class TestAsyncRun:
    def test_run_fetches_every_locale(self, orchestrator, education_context):
        source = StaticMetadataSource({("app-1", loc): value for loc, value in SAMPLE_METADATA.items()})

        snapshot = asyncio.run(orchestrator.run("app-1", education_context, LOCALES + ["fr-FR"], source))

        assert snapshot.status == AuditState.COMPLETE
        assert [r.status for r in snapshot.locale_results] == [
            LocaleStatus.COMPLETE, LocaleStatus.COMPLETE, LocaleStatus.UNAVAILABLE,
        ]
        assert snapshot.locale_results[2].reason == "no metadata for app-1 in fr-FR"

    def test_fetch_error_degrades_locale(self, orchestrator, education_context):
        def fetch(app_id, locale):
            if locale == "es-US":
                raise ConnectionError("reset by peer")
            return AppMetadata.model_validate(SAMPLE_METADATA[locale])

        source = Mock()
        source.fetch_metadata.side_effect = fetch

        snapshot = asyncio.run(orchestrator.run("app-1", education_context, LOCALES, source))

        assert snapshot.status == AuditState.COMPLETE
        assert snapshot.locale_results[1].status == LocaleStatus.UNAVAILABLE
        assert "reset by peer" in snapshot.locale_results[1].reason

    def test_pre_cancelled_locale_is_not_fetched(self, orchestrator, education_context):
        source = Mock()
        source.fetch_metadata.return_value = AppMetadata.model_validate(SAMPLE_METADATA["en-US"])
        cancellation = LocaleCancellation()
        cancellation.cancel("es-US")

        snapshot = asyncio.run(orchestrator.run("app-1", education_context, LOCALES, source, cancellation))

        source.fetch_metadata.assert_called_once_with("app-1", "en-US")
        assert snapshot.locale_results[1].status == LocaleStatus.CANCELLED

    def test_run_evaluates_off_the_event_loop(self, orchestrator, education_context, monkeypatch):
        source = StaticMetadataSource({("app-1", loc): value for loc, value in SAMPLE_METADATA.items()})
        loop_threads = []
        evaluate_threads = []
        original = orchestrator.evaluate

        def recording_evaluate(*args, **kwargs):
            evaluate_threads.append(threading.get_ident())
            return original(*args, **kwargs)

        monkeypatch.setattr(orchestrator, "evaluate", recording_evaluate)

        async def audit():
            loop_threads.append(threading.get_ident())
            return await orchestrator.run("app-1", education_context, LOCALES, source)

        snapshot = asyncio.run(audit())

        assert snapshot.status == AuditState.COMPLETE
        assert len(evaluate_threads) == 1
        assert evaluate_threads[0] != loop_threads[0]
