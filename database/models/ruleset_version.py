from sqlalchemy import Column, Integer, Text, JSON, DateTime, UniqueConstraint

from .base import Base


class RulesetVersion(Base):
    """Published ruleset version with a frozen copy of its overrides."""
    __tablename__ = 'ruleset_version'

    id = Column(Integer, primary_key=True, autoincrement=True)
    context_key = Column(Text, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    version_hash = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    overrides = Column(JSON, nullable=False, default=list)
    created_by = Column(Text, nullable=False, default='system')
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('context_key', 'version', name='uq_ruleset_version_context'),
    )
