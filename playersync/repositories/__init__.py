"""Repositories for data access."""
from playersync.repositories.base import BaseRepository
from playersync.repositories.player_repository import PlayerRepository
from playersync.repositories.stat_repository import PlayerGameStatRepository
from playersync.repositories.sync_report_repository import SyncReportRepository

__all__ = [
    "BaseRepository",
    "PlayerRepository",
    "PlayerGameStatRepository",
    "SyncReportRepository",
]
