"""Shared service infrastructure."""
from playersync.services.core.circuit_breaker import (
    call_with_breaker,
    espn_api_breaker,
    get_breaker_state,
    reset_breaker,
)

__all__ = ["call_with_breaker", "espn_api_breaker", "get_breaker_state", "reset_breaker"]
