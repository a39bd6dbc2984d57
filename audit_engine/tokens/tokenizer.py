"""Locale-scoped tokenization of listing metadata."""
import logging
import re
from typing import Dict, List, Mapping, Optional

from audit_engine.config_loader import TokenizerConfig
from audit_engine.ruleset.models import MergedRuleSet
from audit_engine.tokens.models import FieldTokens, LocaleTokenBag, Token

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_APOSTROPHES = re.compile(r"['’‘`]")
_SEPARATORS = re.compile(r"[|–—\-_/]")
_NON_WORD = re.compile(r"[^\w\s]")


def split_compound(text: str) -> str:
    """Insert spaces at camelCase / PascalCase boundaries."""
    return _CAMEL_BOUNDARY.sub(" ", text)


def normalize_text(text: Optional[str]) -> str:
    """
    Lowercased, punctuation-free form of text.

    "MeditationApp | Sleep–Better" -> "meditation app sleep better"
    """
    if not text:
        return ""
    value = split_compound(text)
    value = _APOSTROPHES.sub("", value)
    value = _SEPARATORS.sub(" ", value)
    value = _NON_WORD.sub(" ", value)
    return " ".join(value.lower().split())


def raw_tokens(text: Optional[str]) -> List[str]:
    return normalize_text(text).split()


class Tokenizer:
    """Tokenizes one locale's fields with the ruleset's stopwords for that locale."""

    def __init__(self, ruleset: MergedRuleSet, config: Optional[TokenizerConfig] = None):
        self.ruleset = ruleset
        self.config = config or TokenizerConfig()

    def tokenize_field(self, field: str, text: Optional[str], stopwords: frozenset) -> FieldTokens:
        raw = raw_tokens(text)
        kept: List[str] = []
        ignored: List[str] = []
        for token in raw:
            if len(token) < self.config.min_token_length or token in stopwords:
                ignored.append(token)
                continue
            if token not in kept:
                kept.append(token)
        return FieldTokens(
            field=field,
            text=(text or "").strip(),
            raw=tuple(raw),
            kept=tuple(kept),
            stopwords=tuple(ignored),
        )

    def tokenize_locale(self, locale: str, fields: Mapping[str, Optional[str]]) -> LocaleTokenBag:
        """
        Tokenize fields in configured order, deduplicating across fields.

        A token keeps the source_field where it was first seen.
        """
        stopwords = self.ruleset.stopwords_for(locale)
        details: Dict[str, FieldTokens] = {}
        seen = set()
        tokens: List[Token] = []
        for field in self.config.fields:
            detail = self.tokenize_field(field, fields.get(field), stopwords)
            details[field] = detail
            for text in detail.kept:
                if text in seen:
                    continue
                seen.add(text)
                tokens.append(Token(text=text, source_field=field, locale=locale))
        logger.debug(f"Tokenized {locale}: {len(tokens)} unique tokens")
        return LocaleTokenBag(locale=locale, tokens=tuple(tokens), field_details=details)
