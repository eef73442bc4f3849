"""Player matching: the pure matcher and the store-bound matching service."""
from playersync.services.sync.matchers.player_matcher import MatchConfig, PlayerMatcher
from playersync.services.sync.matchers.matching_service import MatchingService

__all__ = ["MatchConfig", "PlayerMatcher", "MatchingService"]
