from sqlalchemy import Column, Integer, Text, Float, Boolean, JSON, DateTime, Index

from .base import Base


class RulesetOverride(Base):
    """
    One override row at a single scope layer.

    At most one active row may exist per (scope, scope_key, dimension, key);
    the merge service rejects publishes that would break this.
    """
    __tablename__ = 'ruleset_override'

    id = Column(Integer, primary_key=True, autoincrement=True)

    scope = Column(Text, nullable=False)  # base, vertical, market, client, app
    scope_key = Column(Text, nullable=True)  # NULL only for base scope
    dimension = Column(Text, nullable=False)
    key = Column(Text, nullable=False)

    value = Column(JSON, nullable=True)
    weight_multiplier = Column(Float, nullable=True)
    priority = Column(Integer, nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    author = Column(Text, nullable=False, default='system')
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_override_scope_active', 'scope', 'scope_key', 'active'),
        Index('idx_override_identity', 'scope', 'scope_key', 'dimension', 'key'),
    )


class OverrideAuditLog(Base):
    __tablename__ = 'override_audit_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    override_id = Column(Integer, nullable=False, index=True)
    action = Column(Text, nullable=False)  # create, update, deactivate, delete
    author = Column(Text, nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False)
