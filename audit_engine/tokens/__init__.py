"""Tokens Module - Locale-scoped tokenization, combinations and cross-locale fusion."""
from audit_engine.tokens.models import (
    Advisory, Combo, FieldTokens, FusedKeyword, LocaleTokenBag, Token
)
from audit_engine.tokens.tokenizer import Tokenizer, normalize_text
from audit_engine.tokens.combos import ComboGenerator, validate_combos
from audit_engine.tokens.fusion import detect_budget_waste, fuse, fuse_combos

__all__ = [
    'Advisory', 'Combo', 'FieldTokens', 'FusedKeyword', 'LocaleTokenBag', 'Token',
    'Tokenizer', 'normalize_text', 'ComboGenerator', 'validate_combos',
    'detect_budget_waste', 'fuse', 'fuse_combos',
]
