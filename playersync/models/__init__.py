"""SQLAlchemy models."""
from playersync.models.models import (
    Base,
    Player,
    PlayerGameStat,
    SyncReportRecord,
    MatchAuditLog,
)

__all__ = [
    "Base",
    "Player",
    "PlayerGameStat",
    "SyncReportRecord",
    "MatchAuditLog",
]
