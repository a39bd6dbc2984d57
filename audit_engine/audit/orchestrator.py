#!/usr/bin/env python3
"""
Audit Orchestrator - Runs one metadata audit end to end.

pending -> fetching -> classifying -> combining -> scoring -> complete | failed

evaluate() is synchronous and deterministic: identical metadata, context and
ruleset version produce snapshots that differ only in created_at. run() adds
concurrent per-locale fetching through a MetadataSource.

Per-locale problems (missing or malformed metadata, cancellation) degrade that
locale only. A snapshot store outage is logged and the snapshot still returned.
Conflicting overrides, unsafe patterns and cross-locale combos fail the whole
audit with a reason and no score.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from audit_engine.audit.models import AuditRun, AuditSnapshot, AuditState, LocaleResult, LocaleStatus
from audit_engine.audit.store import SnapshotStore
from audit_engine.classifier.service import PatternClassifier
from audit_engine.config_loader import AppConfig
from audit_engine.exceptions import (
    ConfigConflictError,
    CrossLocaleComboError,
    StoreUnavailableError,
    UnsafePatternError,
)
from audit_engine.metadata_source import AppMetadata, MetadataSource, NotAvailable
from audit_engine.ruleset.models import MergedRuleSet, RulesetContext
from audit_engine.ruleset.service import MergeService
from audit_engine.scorer.models import FormulaEvaluation, ScoringInputs
from audit_engine.scorer.recommendations import build_recommendations
from audit_engine.scorer.service import FormulaEngine
from audit_engine.tokens.combos import ComboGenerator, validate_combos
from audit_engine.tokens.fusion import detect_budget_waste, fuse_combos
from audit_engine.tokens.models import Combo, LocaleTokenBag
from audit_engine.tokens.tokenizer import Tokenizer
from audit_engine.utils import round_score

logger = logging.getLogger(__name__)

AUDIT_FAILURES = (ConfigConflictError, UnsafePatternError, CrossLocaleComboError)

MetadataInput = Union[AppMetadata, NotAvailable, Mapping[str, Any], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LocaleCancellation:
    """Thread-safe, cooperative per-locale cancellation flags."""

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = set()
        self._callbacks: Dict[str, List[Callable[[], None]]] = {}

    def cancel(self, locale: str) -> None:
        with self._lock:
            self._cancelled.add(locale)
            callbacks = self._callbacks.pop(locale, [])
        for callback in callbacks:
            callback()

    def is_cancelled(self, locale: str) -> bool:
        with self._lock:
            return locale in self._cancelled

    def on_cancel(self, locale: str, callback: Callable[[], None]) -> None:
        with self._lock:
            if locale not in self._cancelled:
                self._callbacks.setdefault(locale, []).append(callback)
                return
        callback()

    def clear_callbacks(self) -> None:
        with self._lock:
            self._callbacks.clear()


def _normalize_locales(locale_set: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for locale in locale_set:
        locale = locale.strip()
        if locale and locale not in seen:
            seen.append(locale)
    return tuple(seen)


def _coerce_metadata(value: MetadataInput, locale: str) -> Union[AppMetadata, NotAvailable]:
    if value is None:
        return NotAvailable(locale, "no metadata supplied")
    if isinstance(value, (AppMetadata, NotAvailable)):
        return value
    try:
        return AppMetadata.model_validate(value)
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in e.errors() if error["loc"]})
        logger.warning(f"Malformed metadata for {locale}: {e.error_count()} validation errors")
        return NotAvailable(locale, f"invalid metadata: {', '.join(fields)}" if fields else "invalid metadata")


class AuditOrchestrator:
    def __init__(
        self,
        merge_service: MergeService,
        config: Optional[AppConfig] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.merge_service = merge_service
        self.config = config or AppConfig()
        self.snapshot_store = snapshot_store
        self._clock = clock

    def _failed(
        self,
        run: AuditRun,
        context: RulesetContext,
        locales: Tuple[str, ...],
        error: Exception,
        app_id: Optional[str],
        ruleset: Optional[MergedRuleSet] = None,
    ) -> AuditSnapshot:
        reason = str(error)
        run.transition(AuditState.FAILED, reason)
        logger.warning(f"Audit for {context.key} failed: {reason}")
        return AuditSnapshot(
            app_id=app_id,
            context=context,
            locale_set=locales,
            status=AuditState.FAILED,
            failure_reason=reason,
            error_type=type(error).__name__,
            ruleset_version_hash=ruleset.version_hash if ruleset else None,
            degraded=ruleset.degraded if ruleset else False,
            created_at=self._clock(),
        ).with_content_hash()

    def evaluate(
        self,
        context: RulesetContext,
        locale_set: Sequence[str],
        metadata_by_locale: Mapping[str, MetadataInput],
        cancellation: Optional[LocaleCancellation] = None,
        app_id: Optional[str] = None,
        run: Optional[AuditRun] = None,
    ) -> AuditSnapshot:
        """Audit metadata that is already in hand. Always returns a snapshot."""
        run = run or AuditRun()
        locales = _normalize_locales(locale_set)
        cancellation = cancellation or LocaleCancellation()
        app_id = app_id or context.app_id

        try:
            ruleset = self.merge_service.resolve(context)
        except ConfigConflictError as e:
            return self._failed(run, context, locales, e, app_id)

        try:
            snapshot = self._evaluate_with_ruleset(
                run, ruleset, context, locales, metadata_by_locale, cancellation, app_id
            )
        except AUDIT_FAILURES as e:
            return self._failed(run, context, locales, e, app_id, ruleset)

        if self.snapshot_store is not None and snapshot.is_complete:
            try:
                self.snapshot_store.append(snapshot)
            except StoreUnavailableError as e:
                logger.warning(f"Snapshot {snapshot.content_hash[:12]} for {context.key} not persisted: {e}")
        return snapshot

    def _evaluate_with_ruleset(
        self,
        run: AuditRun,
        ruleset: MergedRuleSet,
        context: RulesetContext,
        locales: Tuple[str, ...],
        metadata_by_locale: Mapping[str, MetadataInput],
        cancellation: LocaleCancellation,
        app_id: Optional[str],
    ) -> AuditSnapshot:
        run.transition(AuditState.CLASSIFYING)
        classifier = PatternClassifier(ruleset)
        tokenizer = Tokenizer(ruleset, self.config.tokenizer)
        locale_results: Dict[str, LocaleResult] = {}
        bags: Dict[str, LocaleTokenBag] = {}
        metadata: Dict[str, AppMetadata] = {}

        for locale in locales:
            if cancellation.is_cancelled(locale):
                locale_results[locale] = LocaleResult(locale=locale, status=LocaleStatus.CANCELLED)
                continue
            fetched = _coerce_metadata(metadata_by_locale.get(locale), locale)
            if isinstance(fetched, NotAvailable):
                logger.info(f"Locale {locale} unavailable: {fetched.reason}")
                locale_results[locale] = LocaleResult(
                    locale=locale, status=LocaleStatus.UNAVAILABLE, reason=fetched.reason
                )
                continue
            metadata[locale] = fetched
            bags[locale] = classifier.annotate_bag(
                tokenizer.tokenize_locale(locale, fetched.field_values())
            )

        run.transition(AuditState.COMBINING)
        generator = ComboGenerator(classifier, ruleset, self.config.combos)
        combos_by_locale: Dict[str, Tuple[Combo, ...]] = {}
        for locale, bag in bags.items():
            combos_by_locale[locale] = generator.generate(bag)
        validate_combos(
            [c for combos in combos_by_locale.values() for c in combos],
            [t for bag in bags.values() for t in bag.tokens],
        )

        run.transition(AuditState.SCORING)
        engine = FormulaEngine(ruleset, self.config.scorer)
        evaluations: Dict[str, FormulaEvaluation] = {}
        for locale, bag in bags.items():
            inputs = self._scoring_inputs(context, bag, combos_by_locale[locale], metadata[locale], classifier)
            evaluations[locale] = engine.evaluate(inputs)

        # Locales cancelled mid-run are discarded wholesale
        for locale in list(bags):
            if cancellation.is_cancelled(locale):
                logger.info(f"Locale {locale} cancelled, discarding partial results")
                bags.pop(locale)
                combos_by_locale.pop(locale, None)
                evaluations.pop(locale, None)
                locale_results[locale] = LocaleResult(locale=locale, status=LocaleStatus.CANCELLED)

        if not evaluations:
            reason = "No locale produced metadata to audit"
            run.transition(AuditState.FAILED, reason)
            return AuditSnapshot(
                app_id=app_id,
                context=context,
                locale_set=locales,
                status=AuditState.FAILED,
                failure_reason=reason,
                locale_results=tuple(locale_results[loc] for loc in locales if loc in locale_results),
                ruleset_version_hash=ruleset.version_hash,
                degraded=ruleset.degraded,
                created_at=self._clock(),
            ).with_content_hash()

        for locale, evaluation in evaluations.items():
            locale_results[locale] = LocaleResult(
                locale=locale,
                status=LocaleStatus.COMPLETE,
                overall_score=evaluation.overall_score,
                warnings=evaluation.warnings,
            )

        ordered = [loc for loc in locales if loc in evaluations]
        formula_results = tuple(r for loc in ordered for r in evaluations[loc].results)
        precision = self.config.scorer.score_precision
        overall = round_score(sum(evaluations[loc].overall_score for loc in ordered) / len(ordered), precision)
        warnings = list(ruleset.warnings)
        for loc in ordered:
            warnings.extend(evaluations[loc].warnings)

        run.transition(AuditState.COMPLETE)
        snapshot = AuditSnapshot(
            app_id=app_id,
            context=context,
            locale_set=locales,
            status=AuditState.COMPLETE,
            tokens=tuple(t for loc in ordered for t in bags[loc].tokens),
            combos=tuple(c for loc in ordered for c in combos_by_locale[loc]),
            fused_keywords=fuse_combos({loc: combos_by_locale[loc] for loc in ordered}),
            formula_results=formula_results,
            locale_results=tuple(locale_results[loc] for loc in locales if loc in locale_results),
            overall_score=overall,
            recommendations=build_recommendations(formula_results, precision),
            warnings=tuple(warnings),
            advisories=detect_budget_waste({loc: bags[loc] for loc in ordered}, self.config.combos.budget_fields),
            ruleset_version_hash=ruleset.version_hash,
            degraded=ruleset.degraded,
            created_at=self._clock(),
        ).with_content_hash()
        logger.info(
            f"Audit complete for {context.key}: overall {overall} across {len(ordered)} locales "
            f"(ruleset {ruleset.version_hash[:12]})"
        )
        return snapshot

    def _scoring_inputs(
        self,
        context: RulesetContext,
        bag: LocaleTokenBag,
        combos: Tuple[Combo, ...],
        metadata: AppMetadata,
        classifier: PatternClassifier,
    ) -> ScoringInputs:
        budget = [bag.field_details[f] for f in ("title", "subtitle") if f in bag.field_details]
        keywords = bag.field_keywords("title") + bag.field_keywords("subtitle")
        return ScoringInputs(
            locale=bag.locale,
            vertical=context.vertical,
            title=metadata.title,
            subtitle=metadata.subtitle,
            description=metadata.description,
            title_keywords=tuple(bag.field_keywords("title")),
            subtitle_keywords=tuple(bag.field_keywords("subtitle")),
            keyword_relevance={k: classifier.relevance(k) for k in keywords},
            tokens=bag.tokens,
            combos=combos,
            raw_token_count=sum(len(d.raw) for d in budget),
            stopword_count=sum(len(d.stopwords) for d in budget),
            description_hook_categories=classifier.match_hooks(metadata.description or ""),
            title_char_limit=self.config.scorer.title_char_limit,
            subtitle_char_limit=self.config.scorer.subtitle_char_limit,
        )

    async def run(
        self,
        app_id: str,
        context: RulesetContext,
        locale_set: Sequence[str],
        source: MetadataSource,
        cancellation: Optional[LocaleCancellation] = None,
    ) -> AuditSnapshot:
        """Fetch every locale concurrently, then evaluate."""
        run = AuditRun()
        run.transition(AuditState.FETCHING)
        locales = _normalize_locales(locale_set)
        cancellation = cancellation or LocaleCancellation()
        loop = asyncio.get_running_loop()

        tasks: Dict[str, asyncio.Task] = {}
        for locale in locales:
            if cancellation.is_cancelled(locale):
                continue
            task = asyncio.ensure_future(asyncio.to_thread(source.fetch_metadata, app_id, locale))
            tasks[locale] = task
            cancellation.on_cancel(locale, lambda t=task: loop.call_soon_threadsafe(t.cancel))

        results = await asyncio.gather(*tasks.values(), return_exceptions=True)
        cancellation.clear_callbacks()

        metadata_by_locale: Dict[str, MetadataInput] = {}
        for locale, result in zip(tasks, results):
            if isinstance(result, asyncio.CancelledError):
                cancellation.cancel(locale)
            elif isinstance(result, Exception):
                logger.warning(f"Fetching {app_id} [{locale}] failed: {result}")
                metadata_by_locale[locale] = NotAvailable(locale, f"fetch failed: {result}")
            else:
                metadata_by_locale[locale] = result

        # evaluate() blocks on in-flight merges and store queries
        return await asyncio.to_thread(
            self.evaluate, context, locales, metadata_by_locale, cancellation, app_id, run
        )
