"""
Database models for the player catalog, per-game stats and sync audit log.

Persisted state layout:
- players: keyed by internal id, nullable unique espn_id
- player_game_stats: keyed by (player_id, game_id, stat_name)
- sync_reports: append-only, indexed by (sync_type, created_at)
- match_audit_log: every link decision written by the matcher or a human
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Float, Integer, DateTime, ForeignKey, Boolean, Text, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class Player(Base):
    """Internal player catalog entry, optionally linked to an ESPN athlete id."""
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    team = Column(String(8), nullable=True, index=True)  # Team abbreviation
    position = Column(String(10), nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)
    espn_id = Column(String(64), unique=True, nullable=True)  # Linked external id
    match_method = Column(String(32), nullable=True)  # How the espn_id link was made
    match_confidence = Column(Float, nullable=True)
    data_source = Column(String(32), nullable=True)  # espn, manual, seed
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    stats = relationship("PlayerGameStat", back_populates="player", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_players_espn_id', 'espn_id'),
        Index('ix_players_team_position', 'team', 'position'),
    )


class PlayerGameStat(Base):
    """One normalized stat value for a player in a game.

    The (player_id, game_id, stat_name) key makes re-syncing a week an
    upsert rather than an insert.
    """
    __tablename__ = "player_game_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    game_id = Column(String(64), nullable=False)
    season = Column(Integer, nullable=True)
    week = Column(Integer, nullable=True)
    stat_name = Column(String(64), nullable=False)
    category = Column(String(16), nullable=False, index=True)
    value = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    player = relationship("Player", back_populates="stats")

    __table_args__ = (
        UniqueConstraint('player_id', 'game_id', 'stat_name', name='uq_player_game_stat'),
        Index('ix_player_game_stats_game', 'game_id'),
        Index('ix_player_game_stats_season_week', 'season', 'week'),
    )


class SyncReportRecord(Base):
    """Append-only record of one finished sync run.

    Written once when a run reaches a terminal status and never updated.
    Cross-run metrics are computed by querying this table.
    """
    __tablename__ = "sync_reports"

    id = Column(String(36), primary_key=True)  # report id
    sync_id = Column(String(36), nullable=False)
    sync_type = Column(String(16), nullable=False)  # players, player_stats, historical, full
    status = Column(String(16), nullable=False, index=True)  # completed, failed, cancelled
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    records_processed = Column(Integer, nullable=False, default=0)
    players_processed = Column(Integer, nullable=False, default=0)
    players_updated = Column(Integer, nullable=False, default=0)
    new_players_added = Column(Integer, nullable=False, default=0)
    stats_records_processed = Column(Integer, nullable=False, default=0)
    new_stats_added = Column(Integer, nullable=False, default=0)
    stats_updated = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)
    matching_errors = Column(Integer, nullable=False, default=0)
    data_errors = Column(Integer, nullable=False, default=0)
    api_errors = Column(Integer, nullable=False, default=0)
    errors = Column(Text, nullable=False, default='[]')  # JSON array stored as Text
    warnings = Column(Text, nullable=False, default='[]')  # JSON array stored as Text
    parameters = Column(Text, nullable=True)  # JSON object (season, weeks, options)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_sync_reports_type_created', 'sync_type', 'created_at'),
    )


class MatchAuditLog(Base):
    """Audit trail for player link decisions.

    Records automatic links written during a sync and manual links made by
    an operator, with the previous and new state of the link.
    """
    __tablename__ = "match_audit_log"

    id = Column(String(36), primary_key=True)
    entity_type = Column(String(16), nullable=False, default='player')
    entity_id = Column(String(64), nullable=False)  # internal player id
    action = Column(String(16), nullable=False, index=True)  # linked, relinked, unlinked
    previous_state = Column(Text, nullable=True)  # JSON stored as Text
    new_state = Column(Text, nullable=True)  # JSON stored as Text
    match_details = Column(Text, nullable=True)  # JSON with confidence, method
    performed_by = Column(String(64), nullable=True, index=True)  # system or operator
    created_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index('ix_audit_entity', 'entity_type', 'entity_id'),
    )
