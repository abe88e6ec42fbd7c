"""
Circuit breaker for fixture sources.

States:
  CLOSED    normal operation, the source is dispatched every cycle
  OPEN      too many consecutive failed cycles, the source is skipped without a request
  HALF_OPEN after cooldown, one probe cycle is allowed to test recovery

Adapters report failure through their result type instead of raising, so the
breaker is driven by explicit record_success/record_failure calls.
"""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and the source is being skipped."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN. Retry after {retry_after:.0f}s.")


class CircuitBreaker:
    """
    Async circuit breaker keyed by source name.

    Args:
        name: Source identifier for logging.
        failure_threshold: Consecutive failures before opening the circuit.
        recovery_timeout_s: Seconds to wait in OPEN state before probing.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout_s: float = 1800.0,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout_s = recovery_timeout_s

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float = 0.0
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout_s:
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
        }

    async def acquire(self) -> None:
        """Admit one dispatch or raise CircuitBreakerOpen."""
        current_state = self.state
        if current_state == CircuitState.OPEN:
            retry_after = self.recovery_timeout_s - (time.monotonic() - self._last_failure_time)
            raise CircuitBreakerOpen(self.name, max(retry_after, 1.0))

        if current_state == CircuitState.HALF_OPEN:
            async with self._lock:
                if self._probe_in_flight:
                    raise CircuitBreakerOpen(self.name, 5.0)
                self._probe_in_flight = True

    async def record_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.OPEN:
                logger.info("circuit_breaker_closed", name=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._probe_in_flight = False
            self._success_count += 1

    async def record_failure(self, error: str) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._probe_in_flight:
                self._probe_in_flight = False
                self._state = CircuitState.OPEN
                logger.warning("circuit_breaker_reopened", name=self.name, error=error)
            elif self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failures=self._failure_count,
                    error=error,
                )
