import yaml
import os
import logging
from typing import List, Optional, Dict
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///metadata_audit.db"
    echo: bool = False


class CacheConfig(BaseModel):
    """
    Configuration for the merged ruleset cache.

    Entries expire softly after ttl_seconds and are invalidated immediately
    on override change notifications.
    """
    enabled: bool = True
    ttl_seconds: int = 300
    max_entries: int = 1024  # Least recently used rulesets are evicted beyond this
    inflight_wait_seconds: float = 30.0  # Max wait on another caller's merge
    max_stale_retries: int = 3
    redis_url: Optional[str] = None  # Optional cross-process mirror
    redis_password: Optional[str] = None
    redis_key_prefix: str = "ruleset"


class MergeConfig(BaseModel):
    """Bounds applied to composed weight multipliers."""
    multiplier_floor: float = 0.1
    multiplier_ceiling: float = 10.0


class TokenizerConfig(BaseModel):
    min_token_length: int = 2
    # Field order defines first-seen order for deduplication
    fields: List[str] = Field(default_factory=lambda: ["title", "subtitle", "description"])


class ComboConfig(BaseModel):
    """
    Configuration for keyword combination generation and strength scoring.

    strength = sum(relevance_points[level]) + intent bonus + hook bonus, capped at 100
    """
    min_n: int = 2
    max_n: int = 3
    max_combos_per_locale: int = 500
    relevance_points: Dict[int, float] = Field(default_factory=lambda: {0: 0.0, 1: 15.0, 2: 30.0, 3: 45.0})
    intent_bonus_scale: float = 10.0
    hook_bonus: float = 10.0
    # Fields whose cross-locale repetition wastes character budget
    budget_fields: List[str] = Field(default_factory=lambda: ["title", "subtitle"])
    # Only these fields feed combination generation
    source_fields: List[str] = Field(default_factory=lambda: ["title", "subtitle"])


class ScorerConfig(BaseModel):
    """
    Configuration for the formula engine.

    Per-formula weights, params and thresholds live in the ruleset; these are
    engine-wide defaults used when the ruleset is silent.
    """
    title_char_limit: int = 30
    subtitle_char_limit: int = 30
    default_pass_threshold: float = 70.0
    default_borderline_margin: float = 10.0
    score_precision: int = 4


class MetadataSourceConfig(BaseModel):
    url: Optional[str] = None
    request_timeout_seconds: int = 15
    max_attempts: int = 3
    retry_wait_seconds: float = 2.0


class WebConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class AppConfig(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    combos: ComboConfig = Field(default_factory=ComboConfig)
    scorer: ScorerConfig = Field(default_factory=ScorerConfig)
    metadata_source: MetadataSourceConfig = Field(default_factory=MetadataSourceConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from a subdirectory), try the project root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    data = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Config file not found at {config_path}, using defaults")

    # Allow env var override for DB URL
    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        data.setdefault('database', {})
        data['database']['url'] = env_db_url

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        data.setdefault('cache', {})
        data['cache']['redis_url'] = env_redis_url

    # Allow env var override for the metadata source
    env_source_url = os.environ.get("METADATA_SOURCE_URL")
    if env_source_url:
        data.setdefault('metadata_source', {})
        data['metadata_source']['url'] = env_source_url

    env_log_level = os.environ.get("LOG_LEVEL")
    if env_log_level:
        data.setdefault('logging', {})
        data['logging']['level'] = env_log_level.upper()

    return AppConfig(**data)
