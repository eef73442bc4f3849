"""
Player Repository for the internal player catalog.

Usage:
    repo = PlayerRepository(db)
    player = repo.find_by_espn_id("3139477")
    unlinked = repo.find_candidates(teams=["KC"], unlinked_only=True)
"""
from typing import Optional, List, Iterable

from playersync.models import Player
from playersync.repositories.base import BaseRepository


class PlayerRepository(BaseRepository[Player]):
    """Repository for player catalog access."""

    def __init__(self, db):
        """Initialize the player repository."""
        super().__init__(Player, db)

    # ========================================================================
    # External ID Lookups
    # ========================================================================

    def find_by_espn_id(self, espn_id: str) -> Optional[Player]:
        """Find a player by linked ESPN id."""
        return self.where_first(Player.espn_id == espn_id)

    # ========================================================================
    # Candidate Queries
    # ========================================================================

    def find_candidates(
        self,
        teams: Optional[Iterable[str]] = None,
        positions: Optional[Iterable[str]] = None,
        active_only: bool = False,
        unlinked_only: bool = False,
    ) -> List[Player]:
        """
        Find players to be scored by the matcher.

        Args:
            teams: Restrict to these team abbreviations
            positions: Restrict to these positions
            active_only: Only active players
            unlinked_only: Only players without an ESPN link

        Returns:
            List of players ordered by id
        """
        query = self.query()
        if teams:
            query = query.filter(Player.team.in_(list(teams)))
        if positions:
            query = query.filter(Player.position.in_(list(positions)))
        if active_only:
            query = query.filter(Player.active.is_(True))
        if unlinked_only:
            query = query.filter(Player.espn_id.is_(None))
        return query.order_by(Player.id).all()
