from sqlalchemy import Column, Integer, Text, Float, Boolean, JSON, DateTime, Index

from .base import Base


class AuditSnapshotRecord(Base):
    """
    Append-only audit snapshot.

    payload holds the full serialized snapshot; the other columns exist for
    filtering and are never updated after insert.
    """
    __tablename__ = 'audit_snapshot'

    id = Column(Integer, primary_key=True, autoincrement=True)
    content_hash = Column(Text, nullable=False, index=True)
    app_id = Column(Text, nullable=True)
    context_key = Column(Text, nullable=False)
    status = Column(Text, nullable=False)
    overall_score = Column(Float, nullable=True)
    ruleset_version_hash = Column(Text, nullable=True)
    degraded = Column(Boolean, nullable=False, default=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_snapshot_app_context', 'app_id', 'context_key', 'id'),
    )
