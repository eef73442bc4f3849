"""Confidence scoring helpers for player matches.

Confidence levels produced by the matcher:
- 1.0: Exact normalized name and same team
- 0.85: Exact normalized name, different team, same position (trades)
- weighted: name/team/position composite for everything else

Decision bands applied to the best score:
- score >= auto_link_threshold: link automatically
- score < manual_review_threshold: genuinely absent, no review
- otherwise: manual review with alternates
"""
from enum import Enum
from typing import Tuple

from playersync.services.sync.types import MatchMethod

EXACT_NAME_AND_TEAM_SCORE = 1.0
EXACT_NAME_AND_POSITION_SCORE = 0.85


class MatchDecision(str, Enum):
    AUTO_LINK = "auto_link"
    MANUAL_REVIEW = "manual_review"
    NO_MATCH = "no_match"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def normalize_weights(name_weight: float, team_weight: float, position_weight: float) -> Tuple[float, float, float]:
    """
    Scale weights so they sum to 1.0.

    Raises:
        ValueError: If any weight is negative or all are zero
    """
    weights = (name_weight, team_weight, position_weight)
    if any(w < 0 for w in weights):
        raise ValueError(f"Match weights must be non-negative, got {weights}")
    total = sum(weights)
    if total <= 0:
        raise ValueError("Match weights must have a positive sum")
    if abs(total - 1.0) < 1e-9:
        return weights
    return tuple(w / total for w in weights)


def weighted_score(
    name_score: float,
    team_score: float,
    position_score: float,
    weights: Tuple[float, float, float],
) -> float:
    """Composite score rounded to 4 places, clamped to [0, 1]."""
    name_weight, team_weight, position_weight = weights
    # Rounding absorbs float drift such as 0.7 + 0.2 + 0.1 == 0.9999999999999999
    return clamp(round(
        name_weight * clamp(name_score)
        + team_weight * clamp(team_score)
        + position_weight * clamp(position_score),
        4,
    ))


def decide(score: float, auto_link_threshold: float, manual_review_threshold: float) -> MatchDecision:
    """Map a best score onto its decision band."""
    if score >= auto_link_threshold:
        return MatchDecision.AUTO_LINK
    if score < manual_review_threshold:
        return MatchDecision.NO_MATCH
    return MatchDecision.MANUAL_REVIEW


def get_match_method_description(confidence: float, method: MatchMethod) -> str:
    """
    Get human-readable description of a match.

    Args:
        confidence: Confidence score (0.0 to 1.0)
        method: Match method

    Returns:
        Human-readable description
    """
    confidence_pct = confidence * 100

    descriptions = {
        MatchMethod.EXACT_NAME_AND_TEAM: f'Exact name and team match ({confidence_pct:.0f}% confidence)',
        MatchMethod.EXACT_NAME_AND_POSITION: f'Exact name and position match, team differs ({confidence_pct:.0f}% confidence)',
        MatchMethod.FUZZY_NAME_AND_TEAM: f'Fuzzy name match with team/position context ({confidence_pct:.0f}% confidence)',
        MatchMethod.PHONETIC_MATCH: f'Phonetic name match ({confidence_pct:.0f}% confidence)',
        MatchMethod.NAME_VARIATION: f'Nickname variation match ({confidence_pct:.0f}% confidence)',
        MatchMethod.MANUAL_LINK: 'Manual link (operator verified)',
        MatchMethod.NEW_PLAYER: 'New player created from provider data',
        MatchMethod.NO_MATCH: 'No match',
    }

    return descriptions.get(method, f'Unknown method ({confidence_pct:.0f}% confidence)')
