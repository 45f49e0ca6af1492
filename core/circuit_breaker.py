"""
Circuit Breaker
===============

Stops hammering a collaborator (reasoning provider, memory store) that keeps
failing, and lets a single trial call through once the cool-down has elapsed.
"""

import time
import threading
from enum import Enum
from typing import Awaitable, Callable, Any
import logging

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Blocking calls
    HALF_OPEN = "half_open"  # Probing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open."""
    pass


class CircuitBreaker:
    """
    Async circuit breaker.

    Counts consecutive failures of awaited calls and opens after `threshold`
    of them. While open, calls fail fast with CircuitBreakerOpenError until
    `timeout` seconds have passed, then one call is let through (HALF_OPEN).

    Example:
        >>> cb = CircuitBreaker(threshold=3, timeout=60.0, name="reasoning")
        >>> text = await cb.call(provider.generate_content, prompt)
    """

    def __init__(self, threshold: int = 5, timeout: float = 60.0, name: str = "default"):
        """
        Initialize circuit breaker.

        Args:
            threshold: Number of consecutive failures before opening
            timeout: Seconds before a trial call is allowed
            name: Identifier for logging
        """
        self.threshold = threshold
        self.timeout = timeout
        self.name = name

        self.failures = 0
        self.last_failure_time = None
        self.state = CircuitState.CLOSED
        self._lock = threading.RLock()

    def _before_call(self):
        with self._lock:
            if self.state == CircuitState.OPEN:
                elapsed = time.time() - self.last_failure_time
                if elapsed > self.timeout:
                    logger.info(f"[CircuitBreaker:{self.name}] Transitioning to HALF_OPEN")
                    self.state = CircuitState.HALF_OPEN
                else:
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is OPEN. "
                        f"Retry after {self.timeout - elapsed:.1f}s"
                    )

    def record_success(self):
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info(f"[CircuitBreaker:{self.name}] Transitioning to CLOSED")
                self.state = CircuitState.CLOSED
            self.failures = 0

    def record_failure(self):
        with self._lock:
            self.failures += 1
            self.last_failure_time = time.time()

            # A failed trial call reopens immediately
            if self.state == CircuitState.HALF_OPEN or self.failures >= self.threshold:
                if self.state != CircuitState.OPEN:
                    logger.warning(
                        f"[CircuitBreaker:{self.name}] Opening circuit after "
                        f"{self.failures} failures"
                    )
                    self.state = CircuitState.OPEN

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await `func(*args, **kwargs)` through the circuit breaker.

        Args:
            func: Coroutine function to call
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Result of the awaited call

        Raises:
            CircuitBreakerOpenError: If circuit is open
            Exception: Original exception from func
        """
        self._before_call()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def reset(self):
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            self.failures = 0
            self.last_failure_time = None
            self.state = CircuitState.CLOSED
            logger.info(f"[CircuitBreaker:{self.name}] Manually reset to CLOSED")

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            return self.state

    def get_failures(self) -> int:
        """Get current failure count."""
        with self._lock:
            return self.failures
