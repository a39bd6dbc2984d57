"""Ruleset Cache Service - Local single-flight cache of merged rulesets with an optional Redis mirror."""
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from redis import Redis

from audit_engine.exceptions import StaleCacheError
from audit_engine.ruleset.models import MergedRuleSet, OverrideChange, RulesetContext

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ENTRIES = 1024


def _sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            sanitized = parsed._replace(
                netloc=f"{parsed.username or ''}:*@{parsed.hostname}:{parsed.port or 6379}"
            )
            return sanitized.geturl()
        return url
    except ValueError:
        return url


@dataclass
class _CacheEntry:
    ruleset: MergedRuleSet
    stored_at: float


class RulesetCacheService:
    """
    Cache of merged rulesets keyed by context.

    At most one merge per context key is in flight; concurrent callers wait on
    the leader's Future. An invalidation that lands while a merge is in flight
    bumps the key's generation, the leader's result is discarded as stale and
    the merge is retried. Degraded rulesets are never cached.

    The local store holds at most max_entries rulesets and evicts the least
    recently used one. Context and generation bookkeeping is kept only for
    keys that are cached or have a merge in flight.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        inflight_wait_seconds: float = 30.0,
        max_stale_retries: int = 3,
        redis_url: Optional[str] = None,
        password: Optional[str] = None,
        key_prefix: str = "ruleset",
        clock: Callable[[], float] = time.monotonic,
        redis_client: Optional[Redis] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self.inflight_wait_seconds = inflight_wait_seconds
        self.max_stale_retries = max_stale_retries
        self.key_prefix = key_prefix
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._inflight: Dict[str, Future] = {}
        self._generations: Dict[str, int] = {}
        self._contexts: Dict[str, RulesetContext] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._redis: Optional[Redis] = redis_client
        self._available = redis_client is not None

        if self._redis is None and redis_url:
            try:
                self._redis = Redis.from_url(
                    redis_url,
                    password=password,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5
                )
                self._redis.ping()
                self._available = True
                logger.info(f"Ruleset cache mirrored to Redis at {_sanitize_url(redis_url)}")
            except Exception as e:
                logger.warning(f"Ruleset cache Redis unavailable, using local cache only: {e}")
                self._redis = None
                self._available = False

    @property
    def is_available(self) -> bool:
        """Check if the Redis mirror is available."""
        if not self._available or not self._redis:
            return False
        try:
            return self._redis.ping()
        except Exception:
            return False

    def _make_key(self, context_key: str) -> str:
        return f"{self.key_prefix}:{context_key}"

    def _get_local(self, key: str) -> Optional[MergedRuleSet]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            self._forget(key)
            return None
        self._entries.move_to_end(key)
        return entry.ruleset

    def _store_local(self, ruleset: MergedRuleSet) -> None:
        """Insert as most recently used, evicting beyond max_entries. Caller holds the lock."""
        key = ruleset.context.key
        self._contexts[key] = ruleset.context
        self._entries[key] = _CacheEntry(ruleset, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._forget(evicted)
            self._evictions += 1
            logger.debug(f"Evicted least recently used ruleset {evicted}")

    def _forget(self, key: str) -> None:
        """Drop bookkeeping for a key that is neither cached nor being merged. Caller holds the lock."""
        if key in self._entries or key in self._inflight:
            return
        self._contexts.pop(key, None)
        self._generations.pop(key, None)

    def _bump_generation(self, key: str) -> None:
        """Mark an in-flight merge stale. Caller holds the lock."""
        if key in self._inflight:
            self._generations[key] = self._generations.get(key, 0) + 1

    def _get_shared(self, key: str) -> Optional[MergedRuleSet]:
        if not self._available or not self._redis:
            return None
        try:
            data = self._redis.get(self._make_key(key))
            if data:
                logger.debug(f"Redis hit for ruleset {key}")
                return MergedRuleSet.model_validate_json(data)
        except Exception as e:
            logger.warning(f"Error reading ruleset from Redis: {e}")
        return None

    def _set_shared(self, ruleset: MergedRuleSet) -> None:
        if not self._available or not self._redis:
            return
        try:
            self._redis.setex(self._make_key(ruleset.context.key), self.ttl_seconds, ruleset.model_dump_json())
        except Exception as e:
            logger.warning(f"Error writing ruleset to Redis: {e}")

    def _delete_shared(self, key: str) -> None:
        if not self._available or not self._redis:
            return
        try:
            self._redis.delete(self._make_key(key))
        except Exception as e:
            logger.warning(f"Error deleting ruleset from Redis: {e}")

    def get(self, context: RulesetContext) -> Optional[MergedRuleSet]:
        with self._lock:
            return self._get_local(context.key)

    def put(self, ruleset: MergedRuleSet) -> bool:
        """Store a ruleset unless it is degraded."""
        if ruleset.degraded:
            return False
        with self._lock:
            self._store_local(ruleset)
        self._set_shared(ruleset)
        return True

    def get_or_compute(self, context: RulesetContext, compute: Callable[[], MergedRuleSet]) -> MergedRuleSet:
        """
        Return the cached ruleset for context or compute it exactly once.

        Exceptions raised by compute (e.g. ConfigConflictError) propagate to the
        leader and to every waiter.
        """
        key = context.key
        for attempt in range(self.max_stale_retries + 1):
            with self._lock:
                cached = self._get_local(key)
                if cached is not None:
                    self._hits += 1
                    logger.debug(f"Ruleset cache hit for {key}")
                    return cached
                self._contexts[key] = context
                future = self._inflight.get(key)
                leader = future is None
                if leader:
                    self._misses += 1
                    future = Future()
                    self._inflight[key] = future
                    generation = self._generations.get(key, 0)

            if not leader:
                try:
                    return future.result(timeout=self.inflight_wait_seconds)
                except StaleCacheError:
                    continue
                except FutureTimeoutError:
                    logger.warning(f"Timed out waiting for in-flight merge of {key}, merging directly")
                    return compute()

            try:
                shared = self._get_shared(key)
                ruleset = shared if shared is not None else compute()
                with self._lock:
                    if self._generations.get(key, 0) != generation:
                        raise StaleCacheError(f"Ruleset for {key} invalidated during merge")
                    if not ruleset.degraded:
                        self._store_local(ruleset)
                if shared is None and not ruleset.degraded:
                    self._set_shared(ruleset)
                future.set_result(ruleset)
                logger.debug(f"Ruleset cache miss for {key}, merged version {ruleset.version_hash[:12]}")
                return ruleset
            except StaleCacheError as e:
                future.set_exception(e)
                logger.debug(f"{e}; retry {attempt + 1}/{self.max_stale_retries}")
            except BaseException as e:
                future.set_exception(e)
                raise
            finally:
                with self._lock:
                    if self._inflight.get(key) is future:
                        del self._inflight[key]
                    self._forget(key)

        logger.warning(f"Ruleset for {key} kept going stale, returning an uncached merge")
        return compute()

    def invalidate(self, context_key: str) -> None:
        with self._lock:
            self._entries.pop(context_key, None)
            self._bump_generation(context_key)
            self._forget(context_key)
        self._delete_shared(context_key)

    def invalidate_for_change(self, change: OverrideChange) -> int:
        """
        Drop every entry the change can affect.

        An entry is affected when the override contributed to it or when the
        override's scope matches the entry's context.
        """
        with self._lock:
            affected = set()
            for key, entry in self._entries.items():
                if change.override_id in entry.ruleset.contributing_override_ids:
                    affected.add(key)
            for key, context in self._contexts.items():
                if context.matches(change.scope, change.scope_key):
                    affected.add(key)
            for key in affected:
                self._entries.pop(key, None)
                self._bump_generation(key)
                self._forget(key)
        for key in affected:
            self._delete_shared(key)
        if affected:
            logger.debug(
                f"Override {change.override_id} {change.action}: invalidated {len(affected)} cached rulesets"
            )
        return len(affected)

    def clear(self) -> None:
        with self._lock:
            for key in list(self._inflight):
                self._bump_generation(key)
            keys = list(self._entries)
            self._entries.clear()
            for key in keys:
                self._forget(key)
        for key in keys:
            self._delete_shared(key)
        logger.info(f"Cleared {len(keys)} cached rulesets")

    def get_cache_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "evictions": self._evictions,
                "tracked_contexts": len(self._contexts),
                "inflight": len(self._inflight),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
                "redis_available": self._available,
            }
