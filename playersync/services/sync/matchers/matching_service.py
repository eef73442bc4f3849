"""Matching service: the matcher bound to a candidate store.

Provides the read/override surface around the pure PlayerMatcher:
- find_matching_player: score one external player against the catalog
- link_player: manual override, bypasses scoring
- unmatched_players: review queue, recomputed on demand
- matching_statistics: summary over a roster, recomputed on demand
"""
import logging
from collections import Counter
from typing import Iterable, List, Optional

from playersync.core.exceptions import DataError
from playersync.services.sync.candidate_store import CandidateFilter, CandidateStore
from playersync.services.sync.matchers.player_matcher import MatchConfig, PlayerMatcher
from playersync.services.sync.types import (
    ExternalPlayer,
    MatchingStatistics,
    MatchMethod,
    PlayerMatchResult,
    UnmatchedPlayer,
)

logger = logging.getLogger(__name__)


class MatchingService:
    """
    Runs the matcher against the stored catalog and writes manual links.

    Args:
        store: Candidate store
        config: Matching policy (defaults to settings)
    """

    def __init__(self, store: CandidateStore, config: Optional[MatchConfig] = None):
        self.store = store
        self.matcher = PlayerMatcher(config or MatchConfig.from_settings())

    @property
    def config(self) -> MatchConfig:
        return self.matcher.config

    def find_matching_player(
        self,
        external: ExternalPlayer,
        candidate_filter: Optional[CandidateFilter] = None,
    ) -> PlayerMatchResult:
        """
        Match one external player against the catalog.

        A player already linked to this external id is returned directly
        with its stored method and confidence.
        """
        linked = self.store.find_by_external_id(external.external_id)
        if linked is not None:
            return self._linked_result(external, linked.internal_id, linked.match_method, linked.match_confidence)

        candidates = self.store.load_candidates(candidate_filter)
        return self.matcher.match(external, candidates)

    def link_player(self, internal_id: int, external_id: str, performed_by: str = "operator") -> bool:
        """
        Manually link a catalog entry to an external id.

        Idempotent for the same pair; a different external id replaces the
        previous link.

        Returns:
            True if linked, False if the player does not exist or the write failed
        """
        if not external_id:
            logger.warning(f"Refusing to link player {internal_id} to an empty external id")
            return False
        try:
            self.store.write_link(internal_id, external_id, MatchMethod.MANUAL_LINK, 1.0, performed_by)
            self.store.commit()
            return True
        except LookupError as e:
            logger.warning(f"Manual link failed: {e}")
            self.store.rollback()
            return False

    def unmatched_players(self, roster: Iterable[ExternalPlayer]) -> List[UnmatchedPlayer]:
        """External players whose best match needs manual review."""
        candidates = self.store.load_candidates()
        linked_ids = {c.external_id for c in candidates if c.external_id}

        unmatched = []
        for external in roster:
            if external.external_id in linked_ids:
                continue
            try:
                result = self.matcher.match(external, candidates)
            except DataError as e:
                logger.warning(f"Skipping unmatched check for {external.external_id}: {e}")
                continue
            if not result.requires_manual_review:
                continue
            best = result.best_candidate
            reasons = [result.reason] if result.reason else []
            if best:
                reasons.extend(best.reasons)
            unmatched.append(UnmatchedPlayer(
                external_id=external.external_id,
                external_name=external.name,
                team=external.team,
                position=external.position,
                active=external.active,
                best_score=result.confidence,
                reasons=reasons,
                candidates=result.alternates,
                attempted_at=result.matched_at,
            ))

        unmatched.sort(key=lambda u: u.best_score, reverse=True)
        return unmatched

    def matching_statistics(self, roster: Iterable[ExternalPlayer]) -> MatchingStatistics:
        """
        Summarize matching over a roster.

        Players already linked count as successful under their stored
        method; the rest are matched now against the catalog.
        """
        candidates = self.store.load_candidates()
        linked = {c.external_id: c for c in candidates if c.external_id}

        stats = MatchingStatistics()
        methods: Counter = Counter()
        confidences = []

        for external in roster:
            stats.total_external_players += 1

            link = linked.get(external.external_id)
            if link is not None:
                method = link.match_method or MatchMethod.MANUAL_LINK.value
                methods[method] += 1
                stats.successful_matches += 1
                if method == MatchMethod.MANUAL_LINK.value:
                    stats.manual_links += 1
                else:
                    stats.auto_linked += 1
                confidences.append(link.match_confidence if link.match_confidence is not None else 1.0)
                continue

            result = self.matcher.match_all([external], candidates)[0]
            methods[result.method.value] += 1
            confidences.append(result.confidence)
            if result.is_match:
                stats.successful_matches += 1
                stats.auto_linked += 1
            elif result.requires_manual_review:
                stats.requiring_manual_review += 1
            else:
                stats.no_matches += 1

        stats.method_breakdown = dict(methods)
        stats.average_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return stats

    @staticmethod
    def _linked_result(
        external: ExternalPlayer,
        internal_id: int,
        method: Optional[str],
        confidence: Optional[float],
    ) -> PlayerMatchResult:
        try:
            match_method = MatchMethod(method) if method else MatchMethod.MANUAL_LINK
        except ValueError:
            match_method = MatchMethod.MANUAL_LINK
        return PlayerMatchResult(
            external_id=external.external_id,
            external_name=external.name,
            internal_id=internal_id,
            confidence=confidence if confidence is not None else 1.0,
            method=match_method,
            reason="Already linked",
        )
