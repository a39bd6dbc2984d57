from .base import Base
from .override import RulesetOverride, OverrideAuditLog
from .ruleset_version import RulesetVersion
from .snapshot import AuditSnapshotRecord

__all__ = [
    'Base',
    'RulesetOverride',
    'OverrideAuditLog',
    'RulesetVersion',
    'AuditSnapshotRecord',
]
