"""Stats transformer: maps raw provider stat entries onto stat categories.

Every key resolves to exactly one StatCategory:
1. Static table of known provider keys (the group decides for keys shared
   between offense and defense, such as sacks)
2. The provider's own box-score group (passing, rushing, ...) when known
3. Keyword fallback on the normalized key
4. general

Range checks are loose and only produce warnings; values are never
dropped for being out of range. A value that is not numeric at all is a
DataError.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from playersync.core.exceptions import DataError
from playersync.services.sync.types import NormalizedStat, RawStatEntry, StatCategory

logger = logging.getLogger(__name__)


STAT_CATEGORY_MAPPINGS: Dict[str, StatCategory] = {}

for _category, _keys in {
    StatCategory.PASSING: [
        "passingCompletions", "passingAttempts", "passingYards", "passingTouchdowns",
        "passingInterceptions", "passingRating", "passingQBR", "passingSacks", "passingLong",
        "completions", "attempts", "interceptions", "QBRating", "adjQBR", "sackYardsLost",
        "yardsPerPassAttempt",
    ],
    StatCategory.RUSHING: [
        "rushingAttempts", "rushingCarries", "rushingYards", "rushingTouchdowns",
        "rushingAverage", "rushingLong", "carries", "yardsPerRushAttempt", "longRushing",
    ],
    StatCategory.RECEIVING: [
        "receivingReceptions", "receivingTargets", "receivingYards", "receivingTouchdowns",
        "receivingAverage", "receivingLong", "receptions", "targets", "yardsPerReception",
        "longReception",
    ],
    StatCategory.DEFENSIVE: [
        "totalTackles", "soloTackles", "assistTackles", "sacks", "defensiveInterceptions",
        "passesDefended", "forcedFumbles", "fumbleRecoveries", "defensiveTouchdowns",
        "tacklesForLoss", "QBHits",
    ],
    StatCategory.KICKING: [
        "fieldGoalsMade", "fieldGoalsAttempted", "extraPointsMade", "extraPointsAttempted",
        "fieldGoals", "extraPoints", "fieldGoalAttempts", "extraPointAttempts", "fieldGoalPct",
        "longFieldGoalMade", "totalKickingPoints",
    ],
    StatCategory.PUNTING: [
        "punts", "puntingYards", "puntingAverage", "puntingLong", "puntingInside20",
        "grossAvgPuntYards", "puntsInside20", "touchbacks", "longPunt",
    ],
}.items():
    for _key in _keys:
        STAT_CATEGORY_MAPPINGS[_key] = _category

# Provider box-score group names → category
GROUP_CATEGORIES: Dict[str, StatCategory] = {
    "passing": StatCategory.PASSING,
    "rushing": StatCategory.RUSHING,
    "receiving": StatCategory.RECEIVING,
    "defensive": StatCategory.DEFENSIVE,
    "interceptions": StatCategory.DEFENSIVE,
    "kicking": StatCategory.KICKING,
    "punting": StatCategory.PUNTING,
}

# Keys ESPN reports under both an offensive and a defensive group; the group decides
GROUP_DEPENDENT_KEYS = {"sacks", "interceptions"}

# Checked in order; first hit wins
KEYWORD_FALLBACK: List[Tuple[StatCategory, Tuple[str, ...]]] = [
    (StatCategory.PASSING, ("pass", "completion", "attempt", "qbr", "rating")),
    (StatCategory.RUSHING, ("rush", "carr")),
    (StatCategory.RECEIVING, ("rec", "target", "catch")),
    (StatCategory.DEFENSIVE, ("sack", "tackle", "int", "fumble", "def")),
    (StatCategory.KICKING, ("kick", "fg", "xp", "extra", "fieldgoal", "extrapoint")),
    (StatCategory.PUNTING, ("punt",)),
]

# (min, max) by stat key; out-of-range values are kept with a warning
VALIDATION_RANGES: Dict[str, Tuple[float, float]] = {
    "passingCompletions": (0, 80),
    "passingAttempts": (0, 100),
    "passingYards": (-50, 800),
    "passingTouchdowns": (0, 12),
    "passingInterceptions": (0, 10),
    "passingRating": (0, 158.3),
    "passingQBR": (0, 100),
    "passingSacks": (0, 15),
    "passingLong": (0, 99),
    "rushingAttempts": (0, 50),
    "rushingCarries": (0, 50),
    "rushingYards": (-30, 400),
    "rushingTouchdowns": (0, 8),
    "rushingAverage": (-5, 50),
    "rushingLong": (0, 99),
    "receivingReceptions": (0, 25),
    "receivingTargets": (0, 30),
    "receivingYards": (-20, 400),
    "receivingTouchdowns": (0, 6),
    "receivingAverage": (-10, 80),
    "receivingLong": (0, 99),
    "totalTackles": (0, 30),
    "soloTackles": (0, 25),
    "assistTackles": (0, 15),
    "sacks": (0, 8),
    "defensiveInterceptions": (0, 5),
    "passesDefended": (0, 10),
    "forcedFumbles": (0, 5),
    "fumbleRecoveries": (0, 5),
    "defensiveTouchdowns": (0, 3),
    "fieldGoalsMade": (0, 8),
    "fieldGoalsAttempted": (0, 10),
    "extraPointsMade": (0, 10),
    "extraPointsAttempted": (0, 12),
    "punts": (0, 15),
    "puntingYards": (0, 1000),
    "puntingAverage": (20, 65),
    "puntingLong": (20, 90),
    "puntingInside20": (0, 10),
    "fumbles": (0, 10),
    "fumblesLost": (0, 8),
}

# Stats that may legitimately be negative (lost yardage, averages)
NEGATIVE_ALLOWED_KEYWORDS = ("yard", "average", "avg", "net", "lost")
# Stats that may legitimately be large
LARGE_VALUE_KEYWORDS = ("yard", "total", "season", "career")
LARGE_VALUE_LIMIT = 1000

NOT_RECORDED_VALUES = {"", "--", "-", "N/A", "n/a"}


def normalize_stat_name(stat_key: str) -> str:
    """Lower-case a stat key and replace spaces, '-' and '/' with '_'."""
    return stat_key.strip().lower().replace(" ", "_").replace("-", "_").replace("/", "_")


@dataclass
class ValidationResult:
    """Result of a validation check."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, error: str):
        """Add an error to the result."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str):
        """Add a warning to the result."""
        self.warnings.append(warning)


class StatsTransformer:
    """
    Maps RawStatEntry values onto NormalizedStat rows.

    Usage:
        transformer = StatsTransformer()
        stat = transformer.transform(entry)
        stats, skipped = transformer.transform_many(entries)
    """

    def categorize(self, stat_key: str, group: Optional[str] = None) -> StatCategory:
        """
        Resolve the category for a provider stat key.

        Never raises: unknown keys map to StatCategory.GENERAL.
        """
        if not stat_key:
            return StatCategory.GENERAL

        group_category = GROUP_CATEGORIES.get(group.strip().lower()) if group else None
        if group_category is not None and stat_key in GROUP_DEPENDENT_KEYS:
            return group_category

        category = STAT_CATEGORY_MAPPINGS.get(stat_key)
        if category is not None:
            return category

        if group_category is not None:
            return group_category

        name = normalize_stat_name(stat_key)

        if name == "interceptions":
            return StatCategory.PASSING

        for category, keywords in KEYWORD_FALLBACK:
            if any(keyword in name for keyword in keywords):
                return category

        return StatCategory.GENERAL

    def transform(self, entry: RawStatEntry) -> NormalizedStat:
        """
        Normalize one raw entry.

        Raises:
            DataError: If the entry has no stat key or the value is not numeric
        """
        if not entry.stat_key:
            raise DataError(f"Stat entry for player {entry.player_external_id} has no stat key")
        if not entry.game_id:
            raise DataError(f"Stat {entry.stat_key} for player {entry.player_external_id} has no game id")

        value = self._parse_value(entry)
        category = self.categorize(entry.stat_key, entry.category_hint)
        warnings = tuple(self._range_warnings(entry.stat_key, value))

        for warning in warnings:
            logger.debug(f"Stat warning for {entry.player_external_id} in {entry.game_id}: {warning}")

        return NormalizedStat(
            player_external_id=entry.player_external_id,
            game_id=entry.game_id,
            stat_name=entry.stat_key,
            category=category,
            value=value,
            season=entry.season,
            week=entry.week,
            warnings=warnings,
        )

    def transform_many(self, entries: Iterable[RawStatEntry]) -> Tuple[List[NormalizedStat], List[str]]:
        """
        Normalize a batch, collecting per-entry failures instead of raising.

        Returns:
            (normalized stats, error messages for entries that were skipped)
        """
        stats, errors = [], []
        for entry in entries:
            try:
                stats.append(self.transform(entry))
            except DataError as e:
                errors.append(str(e))
        return stats, errors

    def validate_entry(self, entry: RawStatEntry) -> ValidationResult:
        """Check identity and season/week fields of a raw entry."""
        result = ValidationResult()

        if not entry.player_external_id:
            result.add_error("Player external id is required")
        if not entry.player_name or not entry.player_name.strip():
            result.add_error("Player name is required")
        if not entry.stat_key:
            result.add_error("Stat key is required")
        if not entry.game_id:
            result.add_error("Game id is required")

        if not entry.position:
            result.add_warning(f"Player {entry.player_name} has no position")
        if not entry.team:
            result.add_warning(f"Player {entry.player_name} has no team")

        if entry.season is not None:
            max_season = datetime.utcnow().year + 1
            if not 1920 <= entry.season <= max_season:
                result.add_error(f"Invalid season: {entry.season}")
        if entry.week is not None and not 1 <= entry.week <= 22:
            result.add_warning(f"Unusual week number: {entry.week}")

        return result

    @staticmethod
    def _parse_value(entry: RawStatEntry) -> float:
        value = entry.value
        if isinstance(value, bool) or value is None:
            raise DataError(f"Stat {entry.stat_key} for {entry.player_external_id} has no numeric value: {value!r}")
        if isinstance(value, (int, float)):
            return float(value)
        text = str(value).strip().replace(",", "")
        if text.endswith("%"):
            text = text[:-1]
        try:
            return float(text)
        except ValueError as e:
            raise DataError(
                f"Stat {entry.stat_key} for {entry.player_external_id} is not numeric: {value!r}"
            ) from e

    @staticmethod
    def _range_warnings(stat_key: str, value: float) -> List[str]:
        warnings = []
        name = normalize_stat_name(stat_key)

        if value < 0 and not any(keyword in name for keyword in NEGATIVE_ALLOWED_KEYWORDS):
            warnings.append(f"{stat_key}={value} is negative")

        bounds = VALIDATION_RANGES.get(stat_key)
        if bounds is not None:
            low, high = bounds
            if not low <= value <= high:
                warnings.append(f"{stat_key}={value} outside expected range [{low}, {high}]")
        elif value > LARGE_VALUE_LIMIT and not any(keyword in name for keyword in LARGE_VALUE_KEYWORDS):
            warnings.append(f"{stat_key}={value} unusually large")

        return warnings


def is_not_recorded(value) -> bool:
    """True for placeholder values the provider uses for 'no stat'."""
    return value is None or (isinstance(value, str) and value.strip() in NOT_RECORDED_VALUES)
