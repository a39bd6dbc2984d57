from audit_engine.cache.ruleset_cache import RulesetCacheService

__all__ = ['RulesetCacheService']
