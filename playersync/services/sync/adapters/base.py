"""Upstream provider contract consumed by the sync orchestrator.

Adapters translate provider payloads into ExternalPlayer, GameEvent and
RawStatEntry values. Failures must surface as ApiError (RateLimitedError for
HTTP 429) so the orchestrator can count and retry them.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from playersync.services.sync.types import ExternalPlayer, GameEvent, RawStatEntry


class ProviderAdapter(ABC):
    """Narrow interface to the upstream sports data provider."""

    name: str = "provider"

    @abstractmethod
    async def fetch_roster(self) -> List[ExternalPlayer]:
        """All rostered players across the league."""

    @abstractmethod
    async def fetch_week_events(self, season: int, week: int) -> List[GameEvent]:
        """Games scheduled in a regular-season week."""

    @abstractmethod
    async def fetch_box_score(self, event_id: str) -> Dict[str, Any]:
        """Raw box-score payload for one game."""

    @abstractmethod
    def parse_box_score(self, payload: Dict[str, Any], event: GameEvent) -> List[RawStatEntry]:
        """Flatten a box-score payload into per-player raw stat entries."""

    async def ping(self) -> bool:
        """Cheap connectivity check."""
        return True

    async def close(self) -> None:
        """Release network resources."""
        return None
