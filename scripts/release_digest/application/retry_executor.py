from __future__ import annotations

import asyncio
import logging
import socket
import time
from typing import Awaitable, Callable, TypeVar

import httpx

from release_digest.domain.entities import CircuitBreakerState, RetryPolicy
from release_digest.domain.errors import GraphQLQueryError, UpstreamError

log = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

GATEWAY_STATUS = 502

_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    ConnectionResetError,
    ConnectionRefusedError,
    TimeoutError,
    socket.gaierror,
)


def _status_of(exc: BaseException) -> int | None:
    if isinstance(exc, UpstreamError):
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def is_gateway_error(exc: BaseException) -> bool:
    """True for HTTP 502, or a message that names a bad gateway."""
    if _status_of(exc) == GATEWAY_STATUS:
        return True
    message = str(exc).lower()
    return "502" in message or "bad gateway" in message


def is_retryable_error(exc: BaseException) -> bool:
    """
    Classify a failure as worth retrying.

      4xx (auth included)          → no
      5xx (gateway included)       → yes
      GraphQL errors, no status    → no
      timeouts / resets / DNS      → yes
      filesystem and anything else → no, unknown failures must surface
    """
    status = _status_of(exc)
    if status is not None:
        if 400 <= status < 500:
            return False
        if 500 <= status < 600:
            return True

    if isinstance(exc, GraphQLQueryError):
        return False

    if isinstance(exc, _TRANSPORT_ERRORS):
        return True

    return False


class RetryExecutor:
    """
    Runs async operations with exponential backoff and a circuit breaker.

    One executor owns one CircuitBreakerState. Keep the executor for the whole
    fetch session so consecutive gateway failures accumulate across calls.

    sleep and clock are injected so tests can drive time deterministically.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        breaker: CircuitBreakerState | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self.policy  = policy or RetryPolicy()
        self.breaker = breaker or CircuitBreakerState()
        self._sleep  = sleep
        self._clock  = clock

    def backoff_delay(self, attempt: int, gateway: bool = False) -> float:
        """Delay before the retry that follows failed attempt number `attempt`."""
        base = self.policy.gateway_base_delay if gateway else self.policy.base_delay
        return min(base * (2 ** (attempt - 1)), self.policy.max_delay)

    async def _wait_for_breaker(self) -> None:
        breaker = self.breaker
        if not breaker.open:
            return

        elapsed = self._clock() - breaker.last_failure_at
        if elapsed < breaker.cooldown:
            remaining = breaker.cooldown - elapsed
            log.warning("Circuit breaker is open — waiting %.1fs before retrying …", remaining)
            await self._sleep(remaining)
        else:
            log.info("Circuit breaker cooldown elapsed — closing and attempting operation")
            breaker.open = False
            breaker.consecutive_failures = 0

    def _record_gateway_failure(self) -> None:
        breaker = self.breaker
        breaker.consecutive_failures += 1
        breaker.last_failure_at = self._clock()
        if breaker.consecutive_failures >= breaker.threshold and not breaker.open:
            breaker.open = True
            log.error(
                "Circuit breaker opened after %d consecutive gateway errors",
                breaker.consecutive_failures,
            )

    async def execute(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """
        Await `operation()` until it succeeds, fails fatally, or runs out of attempts.

        Raises the last error unchanged so callers see the real cause.
        """
        await self._wait_for_breaker()

        max_attempts = self.policy.max_attempts
        attempt = 0

        while True:
            attempt += 1
            log.debug("%s | attempt %d/%d", label, attempt, max_attempts)
            try:
                result = await operation()
            except Exception as exc:
                if not is_retryable_error(exc):
                    log.error("%s failed with non-retryable error: %s", label, exc)
                    raise

                gateway = is_gateway_error(exc)
                if gateway:
                    self._record_gateway_failure()
                    log.warning("%s failed with bad gateway (attempt %d/%d): %s", label, attempt, max_attempts, exc)
                else:
                    log.warning("%s failed (attempt %d/%d): %s", label, attempt, max_attempts, exc)

                if attempt >= max_attempts:
                    log.error("%s failed after %d attempts: %s", label, max_attempts, exc)
                    raise

                delay = self.backoff_delay(attempt, gateway=gateway)
                log.info("Retrying %s in %.1fs …", label, delay)
                await self._sleep(delay)
                continue

            if self.breaker.consecutive_failures > 0:
                log.info("%s succeeded — resetting circuit breaker", label)
                self.breaker.consecutive_failures = 0
                self.breaker.open = False
            return result
