#!/usr/bin/env python3
"""
Formula Engine - Weighted evaluation of registered formulas for one locale.

Weights, params, thresholds and message templates come from the merged
ruleset, falling back to each formula's registered defaults. A formula that
is missing a required input, or whose computation fails on the params it was
given, is excluded from the aggregate and reported as a warning; evaluation
itself never aborts on it.

    overall = sum(weight * score) / sum(weight)   over evaluated formulas
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from audit_engine.config_loader import ScorerConfig
from audit_engine.exceptions import MissingInputError
from audit_engine.ruleset.models import MergedRuleSet
from audit_engine.scorer.examples import examples_for
from audit_engine.scorer.formulas import FORMULA_REGISTRY
from audit_engine.scorer.models import (
    FormulaDefinition,
    FormulaEvaluation,
    FormulaResult,
    ScoringInputs,
)
from audit_engine.utils import clamp, round_score

logger = logging.getLogger(__name__)

# Errors a formula raises when its params are out of range
FORMULA_COMPUTE_ERRORS = (ArithmeticError, LookupError, TypeError, ValueError)


class _SafeDict(dict):
    """Leaves unknown placeholders in place instead of raising KeyError."""

    def __missing__(self, key):
        return "{" + key + "}"


def render_message(template: str, values: Mapping[str, Any]) -> str:
    try:
        return template.format_map(_SafeDict(values))
    except (ValueError, IndexError, AttributeError) as e:
        logger.warning(f"Could not render message template {template!r}: {e}")
        return template


class FormulaEngine:
    """Evaluates the formula registry against a merged ruleset."""

    def __init__(
        self,
        ruleset: MergedRuleSet,
        config: Optional[ScorerConfig] = None,
        registry: Optional[Mapping[str, FormulaDefinition]] = None,
    ):
        self.ruleset = ruleset
        self.config = config or ScorerConfig()
        self.registry = registry if registry is not None else FORMULA_REGISTRY

    def weight(self, definition: FormulaDefinition) -> float:
        return max(0.0, self.ruleset.kpi_weight(definition.id, definition.weight))

    def params(self, definition: FormulaDefinition) -> Dict[str, Any]:
        return {
            name: self.ruleset.formula_param(definition.id, name, default)
            for name, default in definition.params.items()
        }

    def threshold(self, definition: FormulaDefinition) -> float:
        return self.ruleset.threshold(f"{definition.id}.pass_threshold", definition.pass_threshold)

    def borderline_margin(self, definition: FormulaDefinition) -> float:
        return self.ruleset.threshold(f"{definition.id}.borderline_margin", definition.borderline_margin)

    def template(self, definition: FormulaDefinition) -> str:
        return self.ruleset.template(definition.id) or definition.fail_message

    def evaluate_formula(self, definition: FormulaDefinition, inputs: ScoringInputs) -> FormulaResult:
        """
        Evaluate one formula.

        Raises:
            MissingInputError: a required input is absent
        """
        for name in definition.required_inputs:
            inputs.require(definition.id, name)
        outcome = definition.compute(inputs, self.params(definition))
        precision = self.config.score_precision
        score = round_score(clamp(outcome.score, 0.0, 100.0), precision)
        threshold = self.threshold(definition)
        margin = self.borderline_margin(definition)
        passed = score >= threshold
        borderline = passed and score < threshold + margin

        values = {
            **outcome.inputs_used,
            "score": round(score),
            "threshold": round(threshold),
            "label": definition.label,
            "locale": inputs.locale,
            "examples": examples_for(inputs.vertical, definition.dimension),
        }
        template = definition.pass_message if passed and not borderline else self.template(definition)
        return FormulaResult(
            formula_id=definition.id,
            label=definition.label,
            locale=inputs.locale,
            dimension=definition.dimension,
            score=score,
            passed=passed,
            borderline=borderline,
            weight=round_score(self.weight(definition), precision),
            threshold=threshold,
            borderline_margin=margin,
            message=render_message(template, values),
            inputs_used=outcome.inputs_used,
        )

    def evaluate(self, inputs: ScoringInputs) -> FormulaEvaluation:
        results: List[FormulaResult] = []
        warnings: List[str] = []
        skipped: List[str] = []

        for definition in self.registry.values():
            if self.weight(definition) <= 0:
                skipped.append(definition.id)
                continue
            try:
                results.append(self.evaluate_formula(definition, inputs))
            except MissingInputError as e:
                logger.warning(f"[{inputs.locale}] {e}; excluded from overall score")
                warnings.append(f"{inputs.locale}: {e}")
                skipped.append(definition.id)
            except FORMULA_COMPUTE_ERRORS as e:
                logger.error(f"[{inputs.locale}] Formula {definition.id} failed: {e!r}; excluded from overall score")
                warnings.append(f"{inputs.locale}: formula {definition.id} could not be computed ({type(e).__name__}: {e})")
                skipped.append(definition.id)

        total_weight = sum(r.weight for r in results)
        overall = sum(r.weight * r.score for r in results) / total_weight if total_weight else 0.0
        precision = self.config.score_precision
        return FormulaEvaluation(
            locale=inputs.locale,
            results=tuple(results),
            overall_score=round_score(overall, precision),
            total_weight=round_score(total_weight, precision),
            warnings=tuple(warnings),
            skipped=tuple(skipped),
        )
