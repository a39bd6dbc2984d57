from dataclasses import dataclass
from typing import Optional

from audit_engine.audit.orchestrator import AuditOrchestrator
from audit_engine.audit.store import InMemorySnapshotStore, SnapshotStore
from audit_engine.cache.ruleset_cache import RulesetCacheService
from audit_engine.config_loader import AppConfig, CacheConfig
from audit_engine.metadata_source import HttpMetadataSource, MetadataSource
from audit_engine.ruleset.service import MergeService
from audit_engine.ruleset.store import InMemoryOverrideStore, OverrideStore


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    The merge service subscribes to the override store at construction, so
    the store, cache and merge service must always be built together.
    """
    config: AppConfig
    override_store: OverrideStore
    snapshot_store: SnapshotStore
    merge_service: MergeService
    orchestrator: AuditOrchestrator
    cache: Optional[RulesetCacheService] = None
    metadata_source: Optional[MetadataSource] = None

    @classmethod
    def build(cls, config: AppConfig) -> "AppContext":
        """Build an AppContext backed by the configured database.

        Args:
            config: Loaded application configuration

        Returns:
            Fully wired AppContext instance
        """
        from database.database import build_session_factory
        from database.override_store import SqlOverrideStore
        from database.snapshot_store import SqlSnapshotStore

        session_factory = build_session_factory(config.database.url, echo=config.database.echo)
        return cls._assemble(
            config,
            SqlOverrideStore(session_factory),
            SqlSnapshotStore(session_factory),
        )

    @classmethod
    def build_in_memory(cls, config: Optional[AppConfig] = None) -> "AppContext":
        """Build an AppContext with process-local stores (tests, CLI dry runs)."""
        config = config or AppConfig()
        return cls._assemble(config, InMemoryOverrideStore(), InMemorySnapshotStore())

    @classmethod
    def _assemble(
        cls,
        config: AppConfig,
        override_store: OverrideStore,
        snapshot_store: SnapshotStore,
    ) -> "AppContext":
        cache = cls._build_cache(config.cache)
        merge_service = MergeService(override_store, cache=cache, merge_config=config.merge)
        orchestrator = AuditOrchestrator(merge_service, config=config, snapshot_store=snapshot_store)
        return cls(
            config=config,
            override_store=override_store,
            snapshot_store=snapshot_store,
            merge_service=merge_service,
            orchestrator=orchestrator,
            cache=cache,
            metadata_source=cls._build_metadata_source(config),
        )

    @staticmethod
    def _build_cache(cache_config: CacheConfig) -> Optional[RulesetCacheService]:
        """Build the ruleset cache if enabled in config."""
        if not cache_config.enabled:
            return None
        return RulesetCacheService(
            ttl_seconds=cache_config.ttl_seconds,
            max_entries=cache_config.max_entries,
            inflight_wait_seconds=cache_config.inflight_wait_seconds,
            max_stale_retries=cache_config.max_stale_retries,
            redis_url=cache_config.redis_url,
            password=cache_config.redis_password,
            key_prefix=cache_config.redis_key_prefix,
        )

    @staticmethod
    def _build_metadata_source(config: AppConfig) -> Optional[MetadataSource]:
        """Build the HTTP metadata source when a URL is configured."""
        if not config.metadata_source.url:
            return None
        return HttpMetadataSource.from_config(config.metadata_source)
