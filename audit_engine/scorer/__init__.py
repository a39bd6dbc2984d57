#!/usr/bin/env python3
"""
Scoring Module - Weighted KPI formulas.

Public API:
- FormulaEngine: Evaluates the formula registry for one locale
- FormulaResult / FormulaEvaluation: Result models
- build_recommendations: Ranked recommendations across locales

- models.py: Data structures (ScoringInputs, FormulaDefinition, FormulaResult)
- formulas.py: Built-in formula registry
- examples.py: Per-vertical example keywords for messages
- service.py: FormulaEngine
- recommendations.py: Recommendation ranking and deduplication
"""

from audit_engine.scorer.models import FormulaEvaluation, FormulaResult, ScoringInputs
from audit_engine.scorer.service import FormulaEngine
from audit_engine.scorer.recommendations import Recommendation, build_recommendations

__all__ = [
    'FormulaEngine', 'FormulaEvaluation', 'FormulaResult', 'ScoringInputs',
    'Recommendation', 'build_recommendations',
]
