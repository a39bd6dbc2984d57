import hashlib
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def canonical_json(payload: Any) -> str:
    """Serialize payload deterministically (sorted keys, no whitespace)."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def stable_hash(payload: Any) -> str:
    """SHA256 of the canonical JSON form of payload."""
    return hashlib.sha256(canonical_json(payload).encode('utf-8')).hexdigest()


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    if value < low:
        return low
    if value > high:
        return high
    return value


def round_score(value: float, precision: int = 4) -> float:
    """Round a score so repeated runs serialize identically."""
    return round(float(value), precision)


class RulesetFingerprinter:
    """
    Pure logic for deterministic ruleset version hashes and cache keys.
    """

    @staticmethod
    def calculate(context_key: str, contributors: Any, base_version: str) -> str:
        """
        Hash of the context plus the contributing override ids and their update timestamps.
        Formula: SHA256(canonical_json([base_version, context_key, sorted(contributors)]))
        """
        return stable_hash([base_version, context_key, sorted(contributors)])

    @staticmethod
    def normalize_scope_key(value: Any) -> str:
        """
        Normalize a vertical/market/org/app identifier.
        """
        if value is None:
            return ""
        return str(value).strip().lower()
