"""
Retry and circuit breaking for the document classifier.

Only transient failures (timeouts, 5xx, connection errors) are retried or
counted against the breaker. A 4xx or an unparseable verdict is about the
document, not the service, and propagates immediately. The tampering
detector is best-effort and only gets a timeout.
"""

import asyncio
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from fraudflow.errors import CircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """True for failures worth another attempt."""
    return bool(getattr(exc, "retryable", False))


# ── Retry ─────────────────────────────────────────────────────────────────


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """base_delay * 2^attempt, capped, plus up to ``jitter`` seconds."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay + random.uniform(0, jitter) if jitter else delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple = (Exception,),
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    operation_name: str = "operation",
) -> T:
    """
    Call ``fn`` up to ``max_retries + 1`` times.

    An exception is retried only if it is an instance of ``retry_on`` and
    ``retry_if`` (when given) accepts it. The last failure is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            permanent = retry_if is not None and not retry_if(exc)
            if permanent or attempt >= max_retries:
                if not permanent:
                    logger.error("retry_exhausted", operation=operation_name, attempts=attempt + 1, error=str(exc))
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            attempt += 1
            logger.warning(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)


# ── Circuit Breaker ───────────────────────────────────────────────────────


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Fail fast while the classifier is down.

    CLOSED: calls pass; ``failure_threshold`` counted failures inside
    ``window_seconds`` open the circuit.
    OPEN: calls are refused with CircuitOpenError until ``recovery_timeout``
    has elapsed.
    HALF_OPEN: a single probe call is let through. Success closes the circuit,
    a counted failure opens it again.

    ``count_if`` decides which exceptions count as failures; others pass
    through without touching the state.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
        count_if: Optional[Callable[[BaseException], bool]] = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout
        self._count_if = count_if

        self._state = CircuitState.CLOSED
        self._failure_times: list[float] = []
        self._opened_at = 0.0
        self._probing = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and time.monotonic() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("circuit_half_open", breaker=self.name)
        return self._state

    def snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "recent_failures": len(self._failure_times),
        }

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        state = self.state
        if state == CircuitState.OPEN:
            logger.warning("circuit_open_rejected", breaker=self.name)
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is OPEN", breaker=self.name)
        if state == CircuitState.HALF_OPEN:
            if self._probing:
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is probing", breaker=self.name)
            self._probing = True

        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            self._probing = False
            if self._count_if is None or self._count_if(exc):
                self._record_failure()
            raise
        except BaseException:
            # cancelled: no verdict on service health
            self._probing = False
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("circuit_closed", breaker=self.name)
        self.reset()

    def _record_failure(self) -> None:
        now = time.monotonic()
        if self._state == CircuitState.HALF_OPEN:
            self._open(now)
            return

        self._failure_times = [t for t in self._failure_times if t > now - self.window_seconds]
        self._failure_times.append(now)
        if len(self._failure_times) >= self.failure_threshold:
            self._open(now)

    def _open(self, now: float) -> None:
        logger.warning(
            "circuit_opened",
            breaker=self.name,
            failures=len(self._failure_times),
            threshold=self.failure_threshold,
            from_state=self._state.value,
        )
        self._state = CircuitState.OPEN
        self._opened_at = now

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_times.clear()
        self._probing = False
