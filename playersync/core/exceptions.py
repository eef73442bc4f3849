"""
Error taxonomy for matching and synchronization.

- ApiError: upstream unreachable, rate limited, timed out or malformed
- DataError: a single record cannot be parsed or is invalid
- MatchingError: no confident match, record needs manual review
- SystemicFailure: the run cannot continue (repeated ApiErrors, bugs)

Per-item errors are caught at the item boundary by the orchestrator and
folded into the run's SyncResult. Only SystemicFailure ends a run early.
"""
from typing import Optional


class PlayerSyncError(Exception):
    """Base class for all playersync errors."""


class ConfigurationError(PlayerSyncError, ValueError):
    """Invalid MatchConfig or SyncOptions values."""


class ApiError(PlayerSyncError):
    """Upstream provider call failed."""

    def __init__(self, message: str, retryable: bool = True, status_code: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code

    @property
    def error_type(self) -> str:
        """Short label used for metrics."""
        return "http_error" if self.status_code else "api_error"


class RateLimitedError(ApiError):
    """Upstream returned HTTP 429."""

    def __init__(self, message: str = "Rate limited by upstream provider", retry_after: Optional[float] = None):
        super().__init__(message, retryable=True, status_code=429)
        self.retry_after = retry_after

    @property
    def error_type(self) -> str:
        return "rate_limited"


class ApiTimeoutError(ApiError):
    """Upstream call exceeded its deadline."""

    def __init__(self, message: str = "Upstream call timed out"):
        super().__init__(message, retryable=True)

    @property
    def error_type(self) -> str:
        return "timeout"


class DataError(PlayerSyncError):
    """A record could not be parsed or failed validation."""


class MatchingError(PlayerSyncError):
    """No confident match could be made for a record."""


class SystemicFailure(PlayerSyncError):
    """The run cannot continue and must be finalized as failed."""


class SyncCancelledError(PlayerSyncError):
    """Raised inside a run when cancellation has been requested."""
