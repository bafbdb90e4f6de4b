"""
Timeout and retry policies, and the pipeline that composes them.

A policy is anything with ``async execute(operation)`` where ``operation``
is a zero-argument coroutine function. Policies nest like middleware:

    Pipeline(breaker, RetryPolicy(...), TimeoutPolicy(...)).execute(call)

runs ``breaker(retry(timeout(call)))``.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from ..errors import ServiceError, Timeout

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]

logger = logging.getLogger(__name__)


class Policy(Protocol):
    async def execute(self, operation: Operation) -> Any: ...


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    initial_delay: float = 0.2  # seconds
    max_delay: float = 5.0      # seconds
    exponential_base: float = 2.0
    jitter: bool = True


class TimeoutPolicy:
    """Aborts the wrapped call after ``seconds`` and raises Timeout."""

    def __init__(self, seconds: float, name: str = "call"):
        self.seconds = seconds
        self.name = name

    async def execute(self, operation: Operation) -> Any:
        try:
            return await asyncio.wait_for(operation(), timeout=self.seconds)
        except asyncio.TimeoutError as e:
            logger.warning("%s timed out after %ss", self.name, self.seconds)
            raise Timeout(
                f"{self.name} timed out after {self.seconds}s",
                {"timeout": self.seconds},
            ) from e


class RetryPolicy:
    """
    Retries transport and availability failures with exponential backoff.

    Only errors flagged ``retryable`` (Timeout, Transient) are retried.
    Semantic errors propagate on the first attempt. When every attempt
    fails the last error propagates unchanged. Cancellation is never
    caught, so a cancelled caller stops the loop immediately.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        name: str = "call",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.name = name
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is 0-based)."""
        delay = min(
            self.config.initial_delay * (self.config.exponential_base ** attempt),
            self.config.max_delay,
        )
        if self.config.jitter:
            delay = delay * (0.5 + random.random())
        return delay

    async def execute(self, operation: Operation) -> Any:
        attempts = max(1, self.config.max_attempts)
        for attempt in range(attempts):
            try:
                return await operation()
            except ServiceError as e:
                if not e.retryable:
                    raise
                if attempt == attempts - 1:
                    logger.error(
                        "%s failed after %d attempts: %s", self.name, attempts, e
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    self.name, attempt + 1, attempts, delay, e,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")


class Pipeline:
    """Nests policies so the first one given is the outermost."""

    def __init__(self, *policies: Policy):
        self.policies = policies

    async def execute(self, operation: Operation) -> Any:
        wrapped = operation
        for policy in reversed(self.policies):
            wrapped = _bind(policy, wrapped)
        return await wrapped()


def _bind(policy: Policy, inner: Operation) -> Operation:
    async def call():
        return await policy.execute(inner)
    return call
