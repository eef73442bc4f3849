"""Player matcher: scores an external player against the internal catalog.

Scoring pipeline, evaluated for every candidate (best score wins):
1. Exact normalized name + same team → 1.0 (exact_name_and_team)
2. Exact normalized name + same position, team differs → 0.85
   (exact_name_and_position, covers trades)
3. Weighted composite of name, team and position similarity. The name
   score is normalized Levenshtein similarity, optionally raised by a
   Soundex agreement bonus or a nickname bonus before clamping.

The matcher is pure: it never touches the network or the database. Linking
decisions are written by the caller (see MatchingService).

Typical thresholds (configurable):
- >= 0.90: link automatically
- 0.10 - 0.90: flag for manual review with up to 5 alternates
- < 0.10: no match
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from playersync.core.exceptions import ConfigurationError, DataError
from playersync.services.sync.types import (
    CandidatePlayer,
    ExternalPlayer,
    MatchCandidate,
    MatchMethod,
    PlayerMatchResult,
)
from playersync.services.sync.utils.confidence_scorer import (
    EXACT_NAME_AND_POSITION_SCORE,
    EXACT_NAME_AND_TEAM_SCORE,
    MatchDecision,
    clamp,
    decide,
    normalize_weights,
    weighted_score,
)
from playersync.services.sync.utils.name_normalizer import (
    normalize,
    normalize_position,
    normalize_team,
)
from playersync.services.sync.utils.string_similarity import (
    is_name_variation,
    levenshtein_similarity,
    phonetic_match,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchConfig:
    """Tunable matching policy."""
    auto_link_threshold: float = 0.9
    manual_review_threshold: float = 0.1
    max_alternates: int = 5
    name_weight: float = 0.7
    team_weight: float = 0.2
    position_weight: float = 0.1
    enable_phonetic: bool = True
    enable_name_variation: bool = True
    phonetic_bonus: float = 0.1
    nickname_bonus: float = 0.15
    ambiguity_margin: float = 0.0
    verbose_logging: bool = False

    def __post_init__(self):
        if not 0.0 <= self.manual_review_threshold <= self.auto_link_threshold <= 1.0:
            raise ConfigurationError(
                "thresholds must satisfy 0 <= manual_review_threshold <= auto_link_threshold <= 1, "
                f"got {self.manual_review_threshold}/{self.auto_link_threshold}"
            )
        if self.max_alternates < 0:
            raise ConfigurationError(f"max_alternates must be >= 0, got {self.max_alternates}")
        if self.phonetic_bonus < 0 or self.nickname_bonus < 0 or self.ambiguity_margin < 0:
            raise ConfigurationError("bonuses and ambiguity_margin must be >= 0")
        try:
            normalize_weights(self.name_weight, self.team_weight, self.position_weight)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    @property
    def weights(self) -> Tuple[float, float, float]:
        """Name/team/position weights scaled to sum to 1.0."""
        return normalize_weights(self.name_weight, self.team_weight, self.position_weight)

    @classmethod
    def from_settings(cls, **overrides) -> "MatchConfig":
        """Build the config from application settings, with keyword overrides."""
        from playersync.core.config import settings

        values = dict(
            auto_link_threshold=settings.MATCH_AUTO_LINK_THRESHOLD,
            manual_review_threshold=settings.MATCH_MANUAL_REVIEW_THRESHOLD,
            max_alternates=settings.MATCH_MAX_ALTERNATES,
            name_weight=settings.MATCH_NAME_WEIGHT,
            team_weight=settings.MATCH_TEAM_WEIGHT,
            position_weight=settings.MATCH_POSITION_WEIGHT,
            enable_phonetic=settings.MATCH_ENABLE_PHONETIC,
            enable_name_variation=settings.MATCH_ENABLE_NAME_VARIATION,
            phonetic_bonus=settings.MATCH_PHONETIC_BONUS,
            nickname_bonus=settings.MATCH_NICKNAME_BONUS,
            ambiguity_margin=settings.MATCH_AMBIGUITY_MARGIN,
            verbose_logging=settings.MATCH_VERBOSE_LOGGING,
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class _Scored:
    candidate: MatchCandidate
    method: MatchMethod


class PlayerMatcher:
    """
    Scores external players against candidate catalog entries.

    Usage:
        matcher = PlayerMatcher(MatchConfig.from_settings())
        result = matcher.match(external, candidates)
        if result.requires_manual_review:
            queue_for_review(result.alternates)
    """

    def __init__(self, config: Optional[MatchConfig] = None):
        self.config = config or MatchConfig()

    def match(
        self,
        external: ExternalPlayer,
        candidates: Sequence[CandidatePlayer],
        config: Optional[MatchConfig] = None,
    ) -> PlayerMatchResult:
        """
        Match one external player against the candidate set.

        Candidates already linked to a different external id are skipped.

        Args:
            external: Player from the provider roster
            candidates: Catalog entries to score
            config: Overrides the matcher's config for this call

        Returns:
            PlayerMatchResult with the decision and ranked alternates

        Raises:
            DataError: If the external record has no usable name or id
        """
        config = config or self.config
        external_norm = self._validate(external)

        scored = [
            self._score_candidate(external, external_norm, candidate, config)
            for candidate in candidates
            if not (candidate.external_id and candidate.external_id != external.external_id)
        ]

        if not scored:
            return PlayerMatchResult(
                external_id=external.external_id,
                external_name=external.name,
                internal_id=None,
                confidence=0.0,
                method=MatchMethod.NO_MATCH,
                reason="No candidates available",
            )

        # Stable sort keeps catalog order among equal scores
        scored.sort(key=lambda s: s.candidate.score, reverse=True)
        best = scored[0]
        alternates = [s.candidate for s in scored[:config.max_alternates]]
        decision = decide(best.candidate.score, config.auto_link_threshold, config.manual_review_threshold)

        reason = None
        if decision == MatchDecision.AUTO_LINK and len(scored) > 1:
            runner_up = scored[1].candidate
            if runner_up.score >= best.candidate.score - config.ambiguity_margin:
                decision = MatchDecision.MANUAL_REVIEW
                reason = (
                    f"Ambiguous: {best.candidate.name} ({best.candidate.internal_id}) and "
                    f"{runner_up.name} ({runner_up.internal_id}) scored "
                    f"{best.candidate.score:.2f}/{runner_up.score:.2f}"
                )

        if decision == MatchDecision.AUTO_LINK:
            result = PlayerMatchResult(
                external_id=external.external_id,
                external_name=external.name,
                internal_id=best.candidate.internal_id,
                confidence=best.candidate.score,
                method=best.method,
                alternates=alternates,
            )
        elif decision == MatchDecision.NO_MATCH:
            result = PlayerMatchResult(
                external_id=external.external_id,
                external_name=external.name,
                internal_id=None,
                confidence=best.candidate.score,
                method=MatchMethod.NO_MATCH,
                reason=(
                    f"Best score {best.candidate.score:.2f} below review threshold "
                    f"{config.manual_review_threshold:.2f}"
                ),
            )
        else:
            result = PlayerMatchResult(
                external_id=external.external_id,
                external_name=external.name,
                internal_id=None,
                confidence=best.candidate.score,
                method=best.method,
                alternates=alternates,
                requires_manual_review=True,
                reason=reason or (
                    f"Best score {best.candidate.score:.2f} below auto-link threshold "
                    f"{config.auto_link_threshold:.2f}"
                ),
            )

        if config.verbose_logging:
            logger.debug(
                f"Matched '{external.name}' ({external.external_id}): "
                f"{result.method.value} score={result.confidence:.3f} "
                f"internal_id={result.internal_id} review={result.requires_manual_review}"
            )

        return result

    def match_all(
        self,
        externals: Iterable[ExternalPlayer],
        candidates: Sequence[CandidatePlayer],
        config: Optional[MatchConfig] = None,
    ) -> List[PlayerMatchResult]:
        """
        Match every external player independently.

        A failure on one record becomes a no_match result carrying the
        error as its reason; the rest of the batch is still processed.
        """
        results = []
        for external in externals:
            try:
                results.append(self.match(external, candidates, config))
            except Exception as e:
                logger.warning(f"Failed to match external player {getattr(external, 'external_id', '?')}: {e}")
                results.append(PlayerMatchResult(
                    external_id=str(getattr(external, 'external_id', '') or ''),
                    external_name=str(getattr(external, 'name', '') or ''),
                    internal_id=None,
                    confidence=0.0,
                    method=MatchMethod.NO_MATCH,
                    matched_at=datetime.utcnow(),
                    reason=f"Matching failed: {e}",
                ))
        return results

    # ========================================================================
    # Scoring
    # ========================================================================

    @staticmethod
    def _validate(external: ExternalPlayer) -> str:
        if not isinstance(external.name, str):
            raise DataError(f"Malformed name for external player {external.external_id!r}: {external.name!r}")
        if not external.external_id:
            raise DataError(f"External player '{external.name}' has no external id")
        normalized = normalize(external.name)
        if not normalized:
            raise DataError(f"Empty name for external player {external.external_id!r}")
        return normalized

    def _score_candidate(
        self,
        external: ExternalPlayer,
        external_norm: str,
        candidate: CandidatePlayer,
        config: MatchConfig,
    ) -> _Scored:
        candidate_norm = normalize(candidate.name)

        ext_team = normalize_team(external.team)
        ext_position = normalize_position(external.position)
        same_team = bool(ext_team) and ext_team == normalize_team(candidate.team)
        same_position = bool(ext_position) and ext_position == normalize_position(candidate.position)

        if external_norm == candidate_norm:
            if same_team:
                return self._make(candidate, EXACT_NAME_AND_TEAM_SCORE, MatchMethod.EXACT_NAME_AND_TEAM,
                                  ["Exact name match", "Same team"])
            if same_position:
                return self._make(candidate, EXACT_NAME_AND_POSITION_SCORE, MatchMethod.EXACT_NAME_AND_POSITION,
                                  ["Exact name match", "Same position", "Team differs"])

        name_score = levenshtein_similarity(external_norm, candidate_norm)
        reasons = [f"Name similarity {name_score:.2f}"]

        phonetic = 0.0
        if config.enable_phonetic and phonetic_match(external_norm, candidate_norm):
            phonetic = config.phonetic_bonus
            reasons.append("Phonetic match")

        nickname = 0.0
        if config.enable_name_variation and is_name_variation(external_norm, candidate_norm):
            nickname = config.nickname_bonus
            reasons.append("Nickname variation")

        boosted_name = clamp(name_score + phonetic + nickname)
        team_score = 1.0 if same_team else 0.0
        position_score = 1.0 if same_position else 0.0
        if same_team:
            reasons.append("Same team")
        if same_position:
            reasons.append("Same position")

        score = weighted_score(boosted_name, team_score, position_score, config.weights)

        if nickname > 0 and nickname >= phonetic:
            method = MatchMethod.NAME_VARIATION
        elif phonetic > 0:
            method = MatchMethod.PHONETIC_MATCH
        else:
            method = MatchMethod.FUZZY_NAME_AND_TEAM

        return self._make(candidate, score, method, reasons)

    @staticmethod
    def _make(candidate: CandidatePlayer, score: float, method: MatchMethod, reasons: List[str]) -> _Scored:
        return _Scored(
            candidate=MatchCandidate(
                internal_id=candidate.internal_id,
                name=candidate.name,
                team=candidate.team,
                position=candidate.position,
                score=round(clamp(score), 4),
                reasons=reasons,
            ),
            method=method,
        )
