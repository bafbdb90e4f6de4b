"""
Circuit breaker — one instance per downstream service.

States:
    CLOSED     normal operation, failures are counted in a rolling window
    OPEN       calls fail fast with CircuitOpen, nothing reaches the network
    HALF_OPEN  after the cooldown exactly one trial call is let through

    CLOSED --K failures within window--> OPEN
    OPEN --recovery_timeout elapsed--> HALF_OPEN (one trial admitted)
    HALF_OPEN --trial succeeds--> CLOSED
    HALF_OPEN --trial fails--> OPEN

All callers of the same downstream share the instance; state changes happen
under an asyncio.Lock.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from ..errors import CircuitOpen, ServiceError
from .policies import Operation


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5      # failures within the window before opening
    window: float = 30.0            # seconds
    recovery_timeout: float = 15.0  # seconds before a trial call


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.opened_at: float | None = None
        self._failures: deque[float] = deque()
        self._trial_in_flight = False
        self._clock = clock
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(f"{__name__}.{name}")

    @property
    def failure_count(self) -> int:
        return len(self._failures)

    async def acquire(self) -> None:
        """Admit a call or raise CircuitOpen."""
        async with self._lock:
            if self.state == CircuitState.CLOSED:
                return

            if self.state == CircuitState.OPEN:
                elapsed = self._clock() - (self.opened_at or 0.0)
                if elapsed < self.config.recovery_timeout:
                    raise CircuitOpen(self.name)
                self.state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                self.logger.info("Circuit %s HALF_OPEN, admitting one trial call", self.name)
                return

            # HALF_OPEN: only the single trial call is allowed through
            if self._trial_in_flight:
                raise CircuitOpen(self.name)
            self._trial_in_flight = True

    async def record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.OPEN:
                # a straggler admitted before the circuit opened
                return
            if self.state == CircuitState.HALF_OPEN:
                self.logger.info("Circuit %s CLOSED after successful trial", self.name)
            self.state = CircuitState.CLOSED
            self._trial_in_flight = False
            self._failures.clear()
            self.opened_at = None

    async def record_failure(self) -> None:
        async with self._lock:
            now = self._clock()
            if self.state == CircuitState.HALF_OPEN:
                self._open(now)
                self.logger.warning("Circuit %s OPEN again after failed trial", self.name)
                return
            if self.state == CircuitState.OPEN:
                return

            self._failures.append(now)
            while self._failures and now - self._failures[0] > self.config.window:
                self._failures.popleft()
            if len(self._failures) >= self.config.failure_threshold:
                self._open(now)
                self.logger.warning(
                    "Circuit %s OPEN after %d failures within %ss",
                    self.name, self.config.failure_threshold, self.config.window,
                )

    def release_trial(self) -> None:
        """Give the trial slot back when the trial call was cancelled."""
        self._trial_in_flight = False

    def _open(self, now: float) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = now
        self._trial_in_flight = False
        self._failures.clear()

    async def execute(self, operation: Operation) -> Any:
        await self.acquire()
        try:
            result = await operation()
        except asyncio.CancelledError:
            self.release_trial()
            raise
        except ServiceError as e:
            # semantic errors mean the peer answered
            if e.retryable:
                await self.record_failure()
            else:
                await self.record_success()
            raise
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result

    def status(self) -> dict[str, Any]:
        return {
            "service": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "opened_at": self.opened_at,
        }
