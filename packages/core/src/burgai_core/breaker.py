"""Circuit breaker for the model API, held as an immutable value.

The breaker is not a singleton: callers pass a ``CircuitBreakerState`` into
generate_review and receive the updated value back on the envelope, so two
reviews (or two tests) never share breaker state by accident.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerState:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    failure_threshold: int = 5
    reset_timeout: float = 60.0  # seconds an open breaker waits before a trial call


def allow_request(breaker: CircuitBreakerState, now: float | None = None) -> tuple[bool, CircuitBreakerState]:
    """Decide whether a call may go out, moving an expired open breaker to half-open."""
    if breaker.state is not CircuitState.OPEN:
        return True, breaker
    now = time.time() if now is None else now
    if breaker.last_failure_time is not None and now - breaker.last_failure_time >= breaker.reset_timeout:
        logger.info("Circuit breaker half-open: allowing a trial request")
        return True, replace(breaker, state=CircuitState.HALF_OPEN)
    return False, breaker


def record_success(breaker: CircuitBreakerState) -> CircuitBreakerState:
    if breaker.state is not CircuitState.CLOSED:
        logger.info("Circuit breaker closed after a successful request")
    return replace(breaker, state=CircuitState.CLOSED, failure_count=0)


def record_failure(breaker: CircuitBreakerState, now: float | None = None) -> CircuitBreakerState:
    now = time.time() if now is None else now
    failures = breaker.failure_count + 1
    if breaker.state is CircuitState.HALF_OPEN or failures >= breaker.failure_threshold:
        if breaker.state is not CircuitState.OPEN:
            logger.warning("Circuit breaker opened after %d consecutive failure(s)", failures)
        return replace(breaker, state=CircuitState.OPEN, failure_count=failures, last_failure_time=now)
    return replace(breaker, failure_count=failures, last_failure_time=now)
