import unittest

from audit_engine.scorer.models import FormulaResult
from audit_engine.scorer.recommendations import (
    ADVISORY,
    CRITICAL,
    build_recommendations,
    shortfall_severity,
)


def result(formula_id, score, locale="en-US", weight=0.2, threshold=70.0, margin=10.0, message=None):
    passed = score >= threshold
    return FormulaResult(
        formula_id=formula_id,
        label=formula_id,
        locale=locale,
        dimension="title",
        score=score,
        passed=passed,
        borderline=passed and score < threshold + margin,
        weight=weight,
        threshold=threshold,
        borderline_margin=margin,
        message=message or f"{formula_id} in {locale}",
    )


class TestShortfallSeverity(unittest.TestCase):

    def test_distance_below_borderline_ceiling(self):
        self.assertAlmostEqual(shortfall_severity(result("a", 40.0)), 0.4)
        self.assertAlmostEqual(shortfall_severity(result("a", 75.0)), 0.05)

    def test_failing_outranks_borderline(self):
        failing = shortfall_severity(result("a", 69.9))
        borderline = shortfall_severity(result("a", 70.0))
        self.assertGreater(failing, borderline)


class TestBuildRecommendations(unittest.TestCase):

    def test_passing_results_produce_nothing(self):
        self.assertEqual(build_recommendations([result("a", 95.0)]), ())

    def test_ranked_by_priority_then_formula_id(self):
        recs = build_recommendations([
            result("borderline", 75.0, weight=0.1),
            result("failing", 40.0, weight=0.2),
            result("also_failing", 40.0, weight=0.2),
        ])

        self.assertEqual([r.formula_id for r in recs], ["also_failing", "failing", "borderline"])
        self.assertAlmostEqual(recs[0].priority, 0.08)
        self.assertEqual(recs[0].severity, CRITICAL)
        self.assertEqual(recs[2].severity, ADVISORY)
        self.assertAlmostEqual(recs[2].priority, 0.005)

    def test_deduplicated_per_formula_with_locales_unioned(self):
        recs = build_recommendations([
            result("a", 60.0, locale="es-US"),
            result("a", 40.0, locale="en-US"),
            result("a", 75.0, locale="fr-FR"),
        ])

        self.assertEqual(len(recs), 1)
        self.assertEqual(recs[0].locales, ("en-US", "es-US", "fr-FR"))
        self.assertEqual(recs[0].message, "a in en-US")
        self.assertEqual(recs[0].score, 40.0)

    def test_equal_priority_prefers_first_locale(self):
        recs = build_recommendations([
            result("a", 50.0, locale="es-US"),
            result("a", 50.0, locale="de-DE"),
        ])

        self.assertEqual(recs[0].message, "a in de-DE")


if __name__ == '__main__':
    unittest.main()
