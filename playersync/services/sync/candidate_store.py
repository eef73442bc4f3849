"""Candidate store: the catalog side of matching and sync.

CandidateStore is the contract the matcher and orchestrator need from
storage. SqlCandidateStore implements it over SQLAlchemy repositories.

Writes are not committed by the store methods; the orchestrator calls
commit() after each item so a failed item can be rolled back without
losing items that already finished.
"""
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from playersync.core.exceptions import DataError
from playersync.core.logging import get_logger
from playersync.models import MatchAuditLog, Player
from playersync.repositories import PlayerGameStatRepository, PlayerRepository
from playersync.services.sync.types import CandidatePlayer, MatchMethod, NormalizedStat
from playersync.services.sync.utils.name_normalizer import extract_player_name_parts

logger = get_logger(__name__)


@dataclass(frozen=True)
class CandidateFilter:
    """Restricts which catalog entries are offered to the matcher."""
    teams: Optional[List[str]] = None
    positions: Optional[List[str]] = None
    active_only: bool = False
    unlinked_only: bool = False


class CandidateStore(ABC):
    """Storage contract consumed by the matcher and orchestrator."""

    @abstractmethod
    def load_candidates(self, filter: Optional[CandidateFilter] = None) -> List[CandidatePlayer]:
        ...

    @abstractmethod
    def find_by_external_id(self, external_id: str) -> Optional[CandidatePlayer]:
        ...

    @abstractmethod
    def get(self, internal_id: int) -> Optional[CandidatePlayer]:
        ...

    @abstractmethod
    def upsert_player(self, player: CandidatePlayer) -> CandidatePlayer:
        """Insert when internal_id is None, otherwise update name/team/position/active."""

    @abstractmethod
    def write_link(
        self,
        internal_id: int,
        external_id: str,
        method: MatchMethod = MatchMethod.MANUAL_LINK,
        confidence: float = 1.0,
        performed_by: str = "system",
    ) -> bool:
        """Link internal_id to external_id. Idempotent; replaces a prior link."""

    @abstractmethod
    def upsert_stat_row(self, stat: NormalizedStat) -> bool:
        """Upsert keyed by (player_id, game_id, stat_name). Returns True on insert."""

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...


def _to_candidate(player: Player) -> CandidatePlayer:
    return CandidatePlayer(
        internal_id=player.id,
        name=player.name,
        team=player.team,
        position=player.position,
        external_id=player.espn_id,
        active=bool(player.active),
        match_method=player.match_method,
        match_confidence=player.match_confidence,
    )


class SqlCandidateStore(CandidateStore):
    """
    CandidateStore backed by the players / player_game_stats tables.

    Usage:
        store = SqlCandidateStore(db)
        candidates = store.load_candidates(CandidateFilter(unlinked_only=True))
        store.write_link(42, "3139477", MatchMethod.MANUAL_LINK, 1.0, "ops")
        store.commit()
    """

    def __init__(self, db: Session, data_source: str = "espn"):
        """
        Initialize the store.

        Args:
            db: SQLAlchemy database session
            data_source: Tag written on players inserted by sync
        """
        self.db = db
        self.data_source = data_source
        self.players = PlayerRepository(db)
        self.stats = PlayerGameStatRepository(db)

    def load_candidates(self, filter: Optional[CandidateFilter] = None) -> List[CandidatePlayer]:
        filter = filter or CandidateFilter()
        players = self.players.find_candidates(
            teams=filter.teams,
            positions=filter.positions,
            active_only=filter.active_only,
            unlinked_only=filter.unlinked_only,
        )
        return [_to_candidate(p) for p in players]

    def find_by_external_id(self, external_id: str) -> Optional[CandidatePlayer]:
        player = self.players.find_by_espn_id(external_id)
        return _to_candidate(player) if player else None

    def get(self, internal_id: int) -> Optional[CandidatePlayer]:
        player = self.players.find_by_id(internal_id)
        return _to_candidate(player) if player else None

    def upsert_player(self, player: CandidatePlayer) -> CandidatePlayer:
        if not player.name or not player.name.strip():
            raise DataError("Cannot store a player without a name")

        first_name, last_name = extract_player_name_parts(player.name)
        now = datetime.utcnow()

        if player.internal_id is None:
            row = self.players.create(
                name=player.name,
                first_name=first_name or None,
                last_name=last_name or None,
                team=player.team,
                position=player.position,
                active=player.active,
                espn_id=player.external_id,
                match_method=player.match_method,
                match_confidence=player.match_confidence,
                data_source=self.data_source,
                created_at=now,
                updated_at=now,
            )
            self.players.flush()
            logger.debug(f"Inserted player {row.id} '{row.name}' ({row.team})")
            return _to_candidate(row)

        row = self.players.find_by_id(player.internal_id)
        if row is None:
            raise DataError(f"Player {player.internal_id} does not exist")

        row.name = player.name
        row.first_name = first_name or None
        row.last_name = last_name or None
        row.team = player.team
        row.position = player.position
        row.active = player.active
        row.updated_at = now
        self.players.flush()
        return _to_candidate(row)

    def write_link(
        self,
        internal_id: int,
        external_id: str,
        method: MatchMethod = MatchMethod.MANUAL_LINK,
        confidence: float = 1.0,
        performed_by: str = "system",
    ) -> bool:
        """
        Link a catalog entry to an external id.

        Re-issuing the same pair is a no-op. A new external id for an
        already-linked player replaces the old one. If another player holds
        the external id, that player is unlinked first.

        Returns:
            True if the link now exists

        Raises:
            LookupError: If internal_id does not exist
        """
        player = self.players.find_by_id(internal_id)
        if player is None:
            raise LookupError(f"Player {internal_id} does not exist")

        if player.espn_id == external_id:
            return True

        holder = self.players.find_by_espn_id(external_id)
        if holder is not None and holder.id != player.id:
            previous = self._link_state(holder)
            holder.espn_id = None
            holder.match_method = None
            holder.match_confidence = None
            holder.updated_at = datetime.utcnow()
            self.players.flush()  # free the unique espn_id before reassigning
            self._log_audit(holder.id, "unlinked", previous, self._link_state(holder),
                            {"moved_to": player.id}, performed_by)

        previous = self._link_state(player)
        action = "relinked" if player.espn_id else "linked"
        player.espn_id = external_id
        player.match_method = method.value
        player.match_confidence = confidence
        player.updated_at = datetime.utcnow()
        self.players.flush()

        self._log_audit(
            player.id,
            action,
            previous,
            self._link_state(player),
            {"method": method.value, "confidence": confidence},
            performed_by,
        )
        logger.info(f"{action.capitalize()} player {player.id} '{player.name}' to {external_id} via {method.value}")
        return True

    def upsert_stat_row(self, stat: NormalizedStat) -> bool:
        if stat.player_id is None:
            raise DataError(f"Stat {stat.stat_name} for {stat.player_external_id} has no resolved player")

        now = datetime.utcnow()
        row = self.stats.find_by_key(stat.player_id, stat.game_id, stat.stat_name)
        if row is None:
            self.stats.create(
                player_id=stat.player_id,
                game_id=stat.game_id,
                season=stat.season,
                week=stat.week,
                stat_name=stat.stat_name,
                category=stat.category.value,
                value=stat.value,
                created_at=now,
                updated_at=now,
            )
            self.stats.flush()
            return True

        row.value = stat.value
        row.category = stat.category.value
        row.season = stat.season
        row.week = stat.week
        row.updated_at = now
        self.stats.flush()
        return False

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    @staticmethod
    def _link_state(player: Player) -> Dict[str, Any]:
        return {
            "espn_id": player.espn_id,
            "match_method": player.match_method,
            "match_confidence": player.match_confidence,
        }

    def _log_audit(
        self,
        player_id: int,
        action: str,
        previous_state: Optional[Dict[str, Any]],
        new_state: Dict[str, Any],
        match_details: Optional[Dict[str, Any]],
        performed_by: str,
    ) -> None:
        """Add a link decision to the audit trail (committed with the item)."""
        self.db.add(MatchAuditLog(
            id=str(uuid.uuid4()),
            entity_type="player",
            entity_id=str(player_id),
            action=action,
            previous_state=json.dumps(previous_state) if previous_state else None,
            new_state=json.dumps(new_state),
            match_details=json.dumps(match_details) if match_details else None,
            performed_by=performed_by,
            created_at=datetime.utcnow(),
        ))
