"""Classifier Module - Prioritized intent patterns, token relevance and hook detection."""
from audit_engine.classifier.patterns import (
    IntentPattern, IntentType, MatchType, combo_category, ensure_safe_pattern
)
from audit_engine.classifier.service import (
    Classification, HookCategory, IntentCoverage, PatternClassifier, classify
)

__all__ = [
    'IntentPattern', 'IntentType', 'MatchType', 'combo_category', 'ensure_safe_pattern',
    'Classification', 'HookCategory', 'IntentCoverage', 'PatternClassifier', 'classify',
]
