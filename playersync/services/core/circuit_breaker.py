"""
Circuit breaker for upstream provider calls.

Uses pybreaker for breaker state. pybreaker's own call_async is built on
tornado, so async calls are awaited here and their outcome is recorded
through the synchronous CircuitBreaker.call API.

Circuit Breaker States:
- CLOSED: Requests pass through normally
- OPEN: Requests fail immediately (after fail_max consecutive failures)
- HALF_OPEN: One trial request allowed after reset_timeout

Circuit Breakers:
- espn_api_breaker: For ESPN API calls
"""
from typing import Any, Awaitable, Callable, Tuple, Type

from pybreaker import CircuitBreaker, CircuitBreakerError, STATE_OPEN

from playersync.core.logging import get_logger
from playersync.core.metrics import record_circuit_breaker_state

logger = get_logger(__name__)

DEFAULT_FAIL_MAX = 5  # Number of failures before opening circuit
DEFAULT_RESET_TIMEOUT = 60  # Seconds before attempting to close circuit


espn_api_breaker = CircuitBreaker(
    fail_max=DEFAULT_FAIL_MAX,
    reset_timeout=DEFAULT_RESET_TIMEOUT,
    name="espn_api",
)


def get_breaker_state(breaker: CircuitBreaker) -> str:
    """
    Get the current state of a circuit breaker.

    Returns:
        State string: 'closed', 'open', or 'half-open'
    """
    return breaker.current_state


def reset_breaker(breaker: CircuitBreaker) -> None:
    """
    Manually reset a circuit breaker to closed state.

    Only reset if you know the service has recovered.
    """
    breaker.close()
    record_circuit_breaker_state(breaker.name, breaker.current_state)
    logger.warning(f"Circuit breaker '{breaker.name}' manually reset to CLOSED state")


def _noop() -> None:
    return None


def _reraise(exc: BaseException) -> None:
    raise exc


async def call_with_breaker(
    breaker: CircuitBreaker,
    func: Callable[..., Awaitable[Any]],
    *args,
    failure_types: Tuple[Type[BaseException], ...] = (Exception,),
    **kwargs,
) -> Any:
    """
    Await func under circuit breaker protection.

    Args:
        breaker: The circuit breaker to use
        func: Coroutine function performing the upstream call
        failure_types: Exceptions that count as breaker failures; anything
            else propagates without touching the breaker

    Returns:
        Whatever func returns

    Raises:
        CircuitBreakerError: If the circuit is open, or this failure opened it
    """
    trial = breaker.current_state == STATE_OPEN
    if trial:
        # Raises CircuitBreakerError until reset_timeout has elapsed,
        # afterwards lets one trial call through.
        breaker.call(_noop)

    try:
        result = await func(*args, **kwargs)
    except failure_types as exc:
        try:
            if trial:
                # A failed trial keeps the circuit open for another reset_timeout
                breaker.open()
                logger.warning(f"Circuit breaker '{breaker.name}' trial call failed, re-opened")
                raise CircuitBreakerError(f"Trial call failed: {exc}") from exc
            breaker.call(_reraise, exc)
        finally:
            record_circuit_breaker_state(breaker.name, breaker.current_state)
        raise

    breaker.call(_noop)
    return result


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "espn_api_breaker",
    "get_breaker_state",
    "reset_breaker",
    "call_with_breaker",
]
