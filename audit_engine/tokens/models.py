"""Token and combination models embedded in audit snapshots."""
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from audit_engine.classifier.patterns import IntentType


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    source_field: str
    locale: str
    relevance_level: int = 1
    intent_type: Optional[IntentType] = None


class Combo(BaseModel):
    """A locale-bounded keyword combination with its strength tier."""
    model_config = ConfigDict(frozen=True)

    text: str
    tokens: Tuple[str, ...]
    locale: str
    strength_score: float
    tier: str
    intent_type: Optional[IntentType] = None
    category: str = "noise"
    hook_categories: Tuple[str, ...] = ()


class FusedKeyword(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    score: float
    best_locale: str
    locale_scores: Dict[str, float] = Field(default_factory=dict)


class Advisory(BaseModel):
    """Non-fatal observation that does not affect scores."""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    keyword: str
    locales: Tuple[str, ...] = ()
    source_fields: Tuple[str, ...] = ()


class FieldTokens(BaseModel):
    """Per-field tokenization detail used by formulas."""
    model_config = ConfigDict(frozen=True)

    field: str
    text: str = ""
    raw: Tuple[str, ...] = ()
    kept: Tuple[str, ...] = ()
    stopwords: Tuple[str, ...] = ()


class LocaleTokenBag(BaseModel):
    """Ordered, deduplicated tokens of one locale plus per-field detail."""
    model_config = ConfigDict(frozen=True)

    locale: str
    tokens: Tuple[Token, ...] = ()
    field_details: Dict[str, FieldTokens] = Field(default_factory=dict)

    def field_text(self, field: str) -> str:
        detail = self.field_details.get(field)
        return detail.text if detail else ""

    def field_keywords(self, field: str) -> List[str]:
        detail = self.field_details.get(field)
        return list(detail.kept) if detail else []

    def tokens_from(self, fields) -> List[Token]:
        wanted = set(fields)
        return [token for token in self.tokens if token.source_field in wanted]
