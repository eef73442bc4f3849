"""Domain types shared by the matcher, stats transformer and orchestrator.

Matching:
- ExternalPlayer: upstream roster snapshot for the current sync pass
- CandidatePlayer: internal catalog entry offered to the matcher
- MatchCandidate / PlayerMatchResult: scored outcome of one match attempt
- UnmatchedPlayer / MatchingStatistics: review queue and summary views

Sync:
- SyncOptions: validated run configuration
- SyncResult: per-run counters, owned by the run that created it
- SyncReport: immutable record of a finished run
- SyncMetrics: cross-run aggregate computed from the report log

Stats:
- GameEvent, RawStatEntry, NormalizedStat, StatCategory
"""
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from playersync.core.exceptions import ConfigurationError


# ============================================================================
# Matching
# ============================================================================

class MatchMethod(str, Enum):
    """How a match decision was reached."""
    EXACT_NAME_AND_TEAM = "exact_name_and_team"
    EXACT_NAME_AND_POSITION = "exact_name_and_position"
    FUZZY_NAME_AND_TEAM = "fuzzy_name_and_team"
    PHONETIC_MATCH = "phonetic_match"
    NAME_VARIATION = "name_variation"
    MANUAL_LINK = "manual_link"
    NEW_PLAYER = "new_player"  # catalog entry created from the provider record
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class ExternalPlayer:
    """Player record from the upstream provider."""
    external_id: str
    name: str
    team: Optional[str] = None
    position: Optional[str] = None
    active: bool = True
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class CandidatePlayer:
    """Internal catalog entry that may already be linked.

    internal_id is None only for a new entry not yet persisted.
    """
    internal_id: Optional[int]
    name: str
    team: Optional[str] = None
    position: Optional[str] = None
    external_id: Optional[str] = None
    active: bool = True
    match_method: Optional[str] = None
    match_confidence: Optional[float] = None


@dataclass
class MatchCandidate:
    """One scored candidate, offered as an alternate for manual review."""
    internal_id: int
    name: str
    team: Optional[str]
    position: Optional[str]
    score: float
    reasons: List[str] = field(default_factory=list)


@dataclass
class PlayerMatchResult:
    """Outcome of matching one external player against the catalog.

    internal_id is only set when the best score reached the auto-link
    threshold or the link came from a manual override. When
    requires_manual_review is True, internal_id is None.
    """
    external_id: str
    external_name: str
    internal_id: Optional[int]
    confidence: float
    method: MatchMethod
    alternates: List[MatchCandidate] = field(default_factory=list)
    requires_manual_review: bool = False
    matched_at: datetime = field(default_factory=datetime.utcnow)
    reason: Optional[str] = None

    @property
    def is_match(self) -> bool:
        return self.internal_id is not None

    @property
    def best_candidate(self) -> Optional[MatchCandidate]:
        return self.alternates[0] if self.alternates else None


@dataclass
class UnmatchedPlayer:
    """An external player waiting for manual adjudication."""
    external_id: str
    external_name: str
    team: Optional[str]
    position: Optional[str]
    active: bool
    best_score: float
    reasons: List[str]
    candidates: List[MatchCandidate]
    attempted_at: datetime


@dataclass
class MatchingStatistics:
    """Summary of matching outcomes over the current external roster."""
    total_external_players: int = 0
    successful_matches: int = 0
    auto_linked: int = 0
    manual_links: int = 0
    requiring_manual_review: int = 0
    no_matches: int = 0
    method_breakdown: Dict[str, int] = field(default_factory=dict)
    average_confidence: float = 0.0
    calculated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def success_rate(self) -> float:
        """successful_matches / total_external_players, 0.0 when empty."""
        if self.total_external_players == 0:
            return 0.0
        return self.successful_matches / self.total_external_players


# ============================================================================
# Sync
# ============================================================================

class SyncType(str, Enum):
    PLAYERS = "players"
    PLAYER_STATS = "player_stats"
    HISTORICAL = "historical"
    FULL = "full"


class SyncStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALREADY_RUNNING_MESSAGE = "Another sync operation is already running"


@dataclass
class SyncOptions:
    """Run configuration, validated on construction."""
    force_full_sync: bool = False
    skip_inactive: bool = True
    batch_size: int = 100
    continue_on_error: bool = True
    max_retries: int = 3
    dry_run: bool = False
    retry_delay_seconds: float = 1.0
    request_timeout_seconds: float = 30.0
    max_consecutive_api_errors: int = 5
    week_delay_seconds: float = 1.0
    batch_delay_seconds: float = 0.0
    timeout_minutes: float = 60
    validate_data: bool = True
    player_ids: Optional[List[str]] = None
    team_abbreviations: Optional[List[str]] = None

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be > 0, got {self.batch_size}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be > 0")
        if self.max_consecutive_api_errors <= 0:
            raise ConfigurationError("max_consecutive_api_errors must be > 0")
        if self.week_delay_seconds < 0 or self.batch_delay_seconds < 0 or self.retry_delay_seconds < 0:
            raise ConfigurationError("delays must be >= 0")
        if self.timeout_minutes <= 0:
            raise ConfigurationError("timeout_minutes must be > 0")

    @classmethod
    def from_settings(cls, **overrides) -> "SyncOptions":
        """Build options from application settings, with keyword overrides."""
        from playersync.core.config import settings

        values = dict(
            batch_size=settings.SYNC_BATCH_SIZE,
            max_retries=settings.SYNC_MAX_RETRIES,
            retry_delay_seconds=settings.SYNC_RETRY_DELAY_SECONDS,
            request_timeout_seconds=settings.SYNC_REQUEST_TIMEOUT_SECONDS,
            max_consecutive_api_errors=settings.SYNC_MAX_CONSECUTIVE_API_ERRORS,
            week_delay_seconds=settings.SYNC_WEEK_DELAY_SECONDS,
            batch_delay_seconds=settings.SYNC_BATCH_DELAY_SECONDS,
            timeout_minutes=settings.SYNC_TIMEOUT_MINUTES,
        )
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_COUNTER_FIELDS = (
    "records_processed",
    "players_processed",
    "players_updated",
    "new_players_added",
    "stats_records_processed",
    "new_stats_added",
    "stats_updated",
    "records_skipped",
    "matching_errors",
    "data_errors",
    "api_errors",
)


@dataclass
class SyncResult:
    """Counters and messages for one sync run.

    Mutated only by the run that owns it. Once finalize() sets a terminal
    status the result is frozen: further assignments raise AttributeError and
    errors/warnings become tuples.
    """
    sync_type: SyncType
    sync_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SyncStatus = SyncStatus.RUNNING
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    records_processed: int = 0
    players_processed: int = 0
    players_updated: int = 0
    new_players_added: int = 0
    stats_records_processed: int = 0
    new_stats_added: int = 0
    stats_updated: int = 0
    records_skipped: int = 0
    matching_errors: int = 0
    data_errors: int = 0
    api_errors: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    rejected: bool = False

    def __setattr__(self, name, value):
        if self.__dict__.get("_frozen"):
            raise AttributeError(f"SyncResult {self.sync_id} is finalized; cannot set {name}")
        super().__setattr__(name, value)

    @classmethod
    def already_running(cls, sync_type: SyncType) -> "SyncResult":
        """Immediate rejection for a start request while another run is active."""
        result = cls(sync_type=sync_type, rejected=True)
        result.errors.append(ALREADY_RUNNING_MESSAGE)
        result.finalize(SyncStatus.FAILED)
        return result

    @property
    def is_terminal(self) -> bool:
        return self.status != SyncStatus.RUNNING

    @property
    def is_successful(self) -> bool:
        return self.status == SyncStatus.COMPLETED

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @property
    def total_errors(self) -> int:
        return self.matching_errors + self.data_errors + self.api_errors

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def counters(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in _COUNTER_FIELDS}

    def finalize(self, status: SyncStatus, end_time: Optional[datetime] = None) -> "SyncResult":
        """Stamp the terminal status and end time, then freeze."""
        if self.is_terminal:
            raise AttributeError(f"SyncResult {self.sync_id} already finalized as {self.status.value}")
        if status == SyncStatus.RUNNING:
            raise ValueError("finalize() requires a terminal status")
        self.status = status
        self.end_time = end_time or datetime.utcnow()
        self.errors = tuple(self.errors)
        self.warnings = tuple(self.warnings)
        self._frozen = True
        return self


@dataclass(frozen=True)
class SyncReport:
    """Immutable audit record of a finished run."""
    report_id: str
    sync_type: SyncType
    result: SyncResult
    created_at: datetime
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncMetrics:
    """Cross-run aggregate computed from the report log."""
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    cancelled_syncs: int = 0
    average_duration_ms: float = 0.0
    total_records_processed: int = 0
    total_errors: int = 0
    last_successful_sync: Optional[datetime] = None
    syncs_by_type: Dict[str, int] = field(default_factory=dict)
    since: Optional[datetime] = None
    calculated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def success_rate(self) -> float:
        if self.total_syncs == 0:
            return 0.0
        return self.successful_syncs / self.total_syncs


# ============================================================================
# Stats
# ============================================================================

class StatCategory(str, Enum):
    PASSING = "passing"
    RUSHING = "rushing"
    RECEIVING = "receiving"
    DEFENSIVE = "defensive"
    KICKING = "kicking"
    PUNTING = "punting"
    GENERAL = "general"


@dataclass(frozen=True)
class GameEvent:
    """One scheduled or completed game from the provider's scoreboard."""
    event_id: str
    season: int
    week: int
    name: str = ""
    start_time: Optional[datetime] = None
    completed: bool = False
    home_team: Optional[str] = None
    away_team: Optional[str] = None


@dataclass(frozen=True)
class RawStatEntry:
    """One provider stat value for one player in one game, before mapping."""
    player_external_id: str
    player_name: str
    game_id: str
    stat_key: str
    value: Any
    season: Optional[int] = None
    week: Optional[int] = None
    team: Optional[str] = None
    position: Optional[str] = None
    category_hint: Optional[str] = None


@dataclass(frozen=True)
class NormalizedStat:
    """A stat mapped to its category, ready to upsert.

    player_id is filled in by the orchestrator once the external player has
    been resolved to a catalog entry.
    """
    player_external_id: str
    game_id: str
    stat_name: str
    category: StatCategory
    value: float
    season: Optional[int] = None
    week: Optional[int] = None
    player_id: Optional[int] = None
    warnings: Tuple[str, ...] = ()
