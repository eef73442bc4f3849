"""Upstream provider adapters.

Available adapters:
- espn_adapter: ESPN public API (NFL rosters, scoreboards, box scores)

Base classes:
- ProviderAdapter: contract consumed by the sync orchestrator
"""
from playersync.services.sync.adapters.base import ProviderAdapter
from playersync.services.sync.adapters.espn_adapter import EspnAdapter

__all__ = [
    "ProviderAdapter",
    "EspnAdapter",
]
