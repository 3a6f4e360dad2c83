"""
Circuit breaker for the outbound mail server.

When SMTP is down every confirmation email would otherwise wait for a
connect timeout. After enough consecutive failures the breaker opens and
deliveries are skipped outright until the cool-down has passed.
"""

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitBreakerOpenError(RuntimeError):
    """Raised when the breaker refuses to run a call."""


class CircuitState(Enum):
    CLOSED = "closed"  # calls pass through
    OPEN = "open"  # calls rejected
    HALF_OPEN = "half_open"  # one trial call allowed


class CircuitBreaker:
    """
    Transitions:
    - CLOSED -> OPEN: failure_threshold consecutive failures
    - OPEN -> HALF_OPEN: timeout seconds after the last failure
    - HALF_OPEN -> CLOSED: trial call succeeds
    - HALF_OPEN -> OPEN: trial call fails
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60,
        name: str = "CircuitBreaker",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()

        self.failure_count = 0
        self.state = CircuitState.CLOSED
        self.last_failure_time: float | None = None

        logger.info(
            f"CircuitBreaker '{name}' initialized: "
            f"threshold={failure_threshold}, timeout={timeout}s"
        )

    def allow_request(self) -> bool:
        """Decide whether a call may proceed, moving OPEN -> HALF_OPEN when due."""
        with self._lock:
            if self.state != CircuitState.OPEN:
                return True
            if self.last_failure_time is None or (
                self._clock() - self.last_failure_time >= self.timeout
            ):
                logger.info(f"CircuitBreaker '{self.name}': OPEN -> HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info(f"CircuitBreaker '{self.name}': HALF_OPEN -> CLOSED")
            self.failure_count = 0
            self.state = CircuitState.CLOSED
            self.last_failure_time = None

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                if self.state != CircuitState.OPEN:
                    logger.warning(f"CircuitBreaker '{self.name}': {self.state.name} -> OPEN")
                self.state = CircuitState.OPEN

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run func under breaker protection.

        Raises:
            CircuitBreakerOpenError: breaker is open
            Exception: whatever func raised (after being counted)
        """
        if not self.allow_request():
            raise CircuitBreakerOpenError(f"CircuitBreaker '{self.name}' is OPEN")

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure()
            logger.error(
                f"CircuitBreaker '{self.name}' failure "
                f"({self.failure_count}/{self.failure_threshold}): {e}"
            )
            raise

        self.record_success()
        return result

    def get_state(self) -> dict:
        """Breaker state for the health endpoint."""
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "failure_count": self.failure_count,
                "failure_threshold": self.failure_threshold,
                "last_failure_time": self.last_failure_time,
            }
