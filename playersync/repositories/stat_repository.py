"""
Repository for per-game player stats.
"""
from typing import Optional, List

from playersync.models import PlayerGameStat
from playersync.repositories.base import BaseRepository


class PlayerGameStatRepository(BaseRepository[PlayerGameStat]):
    """Repository for player_game_stats rows."""

    def __init__(self, db):
        super().__init__(PlayerGameStat, db)

    def find_by_key(self, player_id: int, game_id: str, stat_name: str) -> Optional[PlayerGameStat]:
        """Find the row for a (player, game, stat name) key."""
        return self.where_first(
            PlayerGameStat.player_id == player_id,
            PlayerGameStat.game_id == game_id,
            PlayerGameStat.stat_name == stat_name,
        )

    def find_for_player(self, player_id: int, season: Optional[int] = None) -> List[PlayerGameStat]:
        criterion = [PlayerGameStat.player_id == player_id]
        if season is not None:
            criterion.append(PlayerGameStat.season == season)
        return self.where(*criterion)
