"""
Circuit breaker for the upstream AI service.

CLOSED -> OPEN after ``failure_threshold`` consecutive server-side failures.
OPEN -> HALF_OPEN once ``reset_timeout_ms`` has passed since the last failure.
HALF_OPEN -> CLOSED on the first success, back to OPEN on a failure.

HALF_OPEN admits a single probe: the caller that moves the breaker out of
OPEN (or the first caller to find it HALF_OPEN) holds the probe slot until it
reports success or failure; everyone else is refused meanwhile.

State is mutated without a lock. All callers run on one event loop and none
of these methods await, so each transition is atomic with respect to other
requests.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from book_editor.config import settings
from book_editor.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNAVAILABLE_MESSAGE = (
    "AI service is temporarily unavailable. Please try again in a minute."
)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout_ms: int = 60_000,
        clock: Callable[[], float] = time.monotonic,
        name: str = "ai-service",
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.clock = clock
        self.name = name
        self.reset()

    @classmethod
    def from_settings(cls) -> "CircuitBreaker":
        return cls(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            reset_timeout_ms=settings.circuit_breaker_reset_timeout_ms,
        )

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failures = 0
        self.last_failure_time: float | None = None
        self.probe_in_flight = False

    def _timeout_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        elapsed_ms = (self.clock() - self.last_failure_time) * 1000
        return elapsed_ms >= self.reset_timeout_ms

    def can_request(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if not self._timeout_elapsed():
                return False
            self.state = CircuitState.HALF_OPEN
            self.probe_in_flight = True
            logger.info(f"Circuit '{self.name}' half-open, sending probe request")
            return True

        # HALF_OPEN
        if self.probe_in_flight:
            return False
        self.probe_in_flight = True
        return True

    def on_success(self) -> None:
        if self.state != CircuitState.CLOSED:
            logger.info(f"Circuit '{self.name}' closed after successful request")
        self.failures = 0
        self.state = CircuitState.CLOSED
        self.probe_in_flight = False

    def on_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = self.clock()
        self.probe_in_flight = False
        if self.state == CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit '{self.name}' opened after {self.failures} consecutive failures"
                )
            self.state = CircuitState.OPEN

    def release_probe(self) -> None:
        """Give the probe slot back without counting an outcome (client-side error)."""
        self.probe_in_flight = False

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        is_failure: Callable[[BaseException], bool] = lambda exc: True,
    ) -> T:
        """Run *fn* if the breaker admits it.

        Exceptions for which *is_failure* returns False (e.g. 4xx from the
        upstream) propagate without counting against the breaker.
        """
        if not self.can_request():
            raise ServiceUnavailableError(UNAVAILABLE_MESSAGE)

        try:
            result = await fn()
        except BaseException as exc:
            if isinstance(exc, Exception) and is_failure(exc):
                self.on_failure()
            else:
                self.release_probe()
            raise

        self.on_success()
        return result
