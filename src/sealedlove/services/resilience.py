"""Retry and circuit breaking for outbound email transports."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import ParamSpec, TypeVar

import httpx
from aiosmtplib import SMTPConnectError, SMTPServerDisconnected
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# Transient failures worth another attempt; HTTP 4xx/5xx answers are not
RETRYABLE_EXCEPTIONS = (
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TransportError,
    SMTPConnectError,
    SMTPServerDisconnected,
)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitOpenError(Exception):
    """Raised when circuit breaker is open."""

    pass


@dataclass
class CircuitBreaker:
    """Stops hammering a transport that keeps failing.

    - CLOSED: requests pass through
    - OPEN: requests are rejected until recovery_timeout has elapsed
    - HALF_OPEN: a few trial requests decide whether to close again
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 3

    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    failure_count: int = field(default=0, init=False)
    last_failure_time: float = field(default=0.0, init=False)
    half_open_calls: int = field(default=0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        async with self._lock:
            if (
                self.state == CircuitState.OPEN
                and time.time() - self.last_failure_time >= self.recovery_timeout
            ):
                logger.info(f"Circuit '{self.name}' transitioning to half-open")
                self.state = CircuitState.HALF_OPEN
                self.half_open_calls = 0

            if self.state == CircuitState.OPEN:
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is open")

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._on_failure(e)
            raise
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.half_open_calls += 1
                if self.half_open_calls >= self.half_open_max_calls:
                    logger.info(f"Circuit '{self.name}' recovered, closing")
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    async def _on_failure(self, error: Exception) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}' failed in half-open, reopening")
                self.state = CircuitState.OPEN
            elif self.failure_count >= self.failure_threshold:
                logger.warning(
                    f"Circuit '{self.name}' opened after {self.failure_count} failures: {error}"
                )
                self.state = CircuitState.OPEN

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.half_open_calls = 0


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """Get or create a circuit breaker by name."""
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name=name)
    return _circuit_breakers[name]


async def with_retry(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    **kwargs: P.kwargs,
) -> T:  # type: ignore[return-value]
    """Execute an async function with exponential backoff retry.

    Only RETRYABLE_EXCEPTIONS trigger another attempt; the last exception is
    re-raised once attempts run out.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)

