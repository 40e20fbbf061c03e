"""Backoff retries and circuit breakers for collaborator calls.

``retry_async`` re-runs a coroutine function when it raises one of the
exception types listed in its ``RetryConfig``; anything else propagates on
the first attempt. ``CircuitBreaker`` stops calling a collaborator after
consecutive failures and lets trial calls through once ``reset_timeout``
has passed.

Usage:
    response = await retry_async(
        client.post, "/Messages.json", data=data,
        config=RetryConfig(max_attempts=2, retryable_exceptions=(httpx.ConnectError,)),
    )

    async with get_circuit_breaker("groq_api"):
        ...
"""
from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from textback_agent.core.exceptions import CircuitOpenError
from textback_agent.core.log import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """How often and how patiently to retry a call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,)

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        capped = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        spread = capped * self.jitter
        return max(0.0, capped + random.uniform(-spread, spread))


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    on_retry: Callable[[Exception, int, float], None] | None = None,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying retryable failures.

    The last error is re-raised once ``config.max_attempts`` calls have failed.
    ``on_retry(error, attempt, delay)`` runs before each wait.
    """
    config = config or RetryConfig()
    call = getattr(func, "__qualname__", repr(func))
    attempt = 1

    while True:
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= config.max_attempts:
                log.warning("Retries exhausted", call=call, attempts=attempt, error=str(e))
                raise

            delay = config.calculate_delay(attempt)
            log.warning(
                "Retrying call",
                call=call,
                attempt=attempt,
                error=f"{type(e).__name__}: {e}",
                delay=round(delay, 2),
            )
            if on_retry is not None:
                on_retry(e, attempt, delay)
            await asyncio.sleep(delay)
            attempt += 1


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fails fast while a collaborator keeps failing.

    ``failure_threshold`` consecutive failures open the circuit. After
    ``reset_timeout`` seconds it turns half-open and admits up to
    ``success_threshold`` trial calls; that many successes close it again and
    any trial failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        success_threshold: int = 2,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._trials = 0
        self._opened_at: float | None = None

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._remaining() <= 0:
            log.info("Circuit breaker half-open", breaker=self.name)
            self._state = CircuitState.HALF_OPEN
            self._successes = 0
            self._trials = 0
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def reset_at(self) -> datetime | None:
        """When an open circuit starts admitting trial calls."""
        if self._state != CircuitState.OPEN:
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=max(0.0, self._remaining()))

    def _remaining(self) -> float:
        if self._opened_at is None:
            return 0.0
        return self.reset_timeout - (time.monotonic() - self._opened_at)

    def _open(self) -> None:
        log.warning("Circuit breaker open", breaker=self.name, failures=self._failures)
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and self._trials < self.success_threshold:
            self._trials += 1
            return True
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._successes += 1
            if self._successes >= self.success_threshold:
                log.info("Circuit breaker closed", breaker=self.name)
                self._state = CircuitState.CLOSED
                self._opened_at = None
        self._failures = 0

    def record_failure(self) -> None:
        self._failures += 1
        if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            self._open()

    async def __aenter__(self) -> "CircuitBreaker":
        if not self.allow_request():
            reset_at = self.reset_at
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' is open",
                details={"reset_at": reset_at.isoformat() if reset_at else None},
            )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: BaseException | None, exc_tb: Any) -> bool:
        if exc_val is None:
            self.record_success()
        else:
            self.record_failure()
        return False


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    reset_timeout: float = 60.0,
) -> CircuitBreaker:
    """Shared breaker for ``name``; thresholds apply only on first creation."""
    breaker = _circuit_breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(name, failure_threshold, reset_timeout)
        _circuit_breakers[name] = breaker
    return breaker


def get_circuit_breaker_status() -> dict[str, dict[str, Any]]:
    status = {}
    for name, breaker in _circuit_breakers.items():
        reset_at = breaker.reset_at
        status[name] = {
            "state": breaker.state.value,
            "failures": breaker.failure_count,
            "reset_at": reset_at.isoformat() if reset_at else None,
        }
    return status


def reset_circuit_breakers() -> None:
    _circuit_breakers.clear()
