"""Metadata audit engine: ruleset merge, classification, combos, formulas, audits."""
