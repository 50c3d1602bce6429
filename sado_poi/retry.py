"""Bounded retry with backoff for one area fetch.

Each fetch runs an explicit state machine:

    IDLE -> FETCHING -> SUCCESS
                     -> RETRYING -> FETCHING ...
                     -> FAILED (terminal)

Transient failures (HTTP 429/5xx, transport errors, attempt timeouts) are
retried up to ``max_retries`` times; everything else fails immediately.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar

from .errors import NetworkError
from .events import EventLog, default_event_log
from .http import RequestMetrics

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class FetchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    attempt_timeout: Optional[float] = 30.0
    backoff: str = "linear"

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        if retry_after is not None:
            return max(0.0, min(retry_after, self.max_delay))
        if self.backoff == "exponential":
            delay = self.base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * attempt
        return max(0.0, min(delay, self.max_delay))

    @classmethod
    def from_config(cls, cfg) -> "RetryPolicy":
        return cls(
            max_retries=cfg.max_retries,
            base_delay=cfg.retry_delay,
            max_delay=cfg.retry_max_delay,
            attempt_timeout=cfg.request_timeout,
            backoff=cfg.backoff,
        )


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.TimeoutError):
        return True
    if isinstance(exc, NetworkError):
        if exc.status is None:
            return True
        return exc.status == 429 or exc.status >= 500
    return False


class AreaFetch:
    def __init__(
        self,
        area: str,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        log: Optional[EventLog] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.area = area
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.log = log or default_event_log()
        self.metrics = metrics
        self.state = FetchState.IDLE
        self.history: List[FetchState] = [FetchState.IDLE]
        self.attempts = 0
        self.last_error: Optional[BaseException] = None

    def _move(self, state: FetchState) -> None:
        self.state = state
        self.history.append(state)

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        timeout = self.policy.attempt_timeout
        if timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.state is not FetchState.IDLE:
            raise RuntimeError(f"AreaFetch for {self.area} already ran (state={self.state.value})")

        while True:
            self.attempts += 1
            self._move(FetchState.FETCHING)
            try:
                result = await self._attempt(operation)
            except asyncio.CancelledError:
                self._move(FetchState.FAILED)
                raise
            except Exception as exc:
                self.last_error = exc
                retryable = is_transient(exc)
                if not retryable or self.attempts >= self.policy.max_attempts:
                    self._move(FetchState.FAILED)
                    raise
                delay = self.policy.delay_for(self.attempts, getattr(exc, "retry_after", None))
                self.log.log(
                    "warn",
                    "Transient fetch failure, retrying",
                    {
                        "area": self.area,
                        "attempt": self.attempts,
                        "max_attempts": self.policy.max_attempts,
                        "delay_s": delay,
                        "error": describe_error(exc),
                    },
                )
                if self.metrics is not None:
                    self.metrics.inc("retries")
                self._move(FetchState.RETRYING)
                try:
                    await self.sleep(delay)
                except asyncio.CancelledError:
                    self._move(FetchState.FAILED)
                    raise
                continue
            self._move(FetchState.SUCCESS)
            return result


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "attempt timed out"
    if isinstance(exc, NetworkError) and exc.status is not None:
        return f"HTTP {exc.status}"
    return str(exc) or exc.__class__.__name__
