"""
Resiliency knobs shared by every outbound client of a process.
"""

import os
from dataclasses import dataclass, field

from .breaker import CircuitBreakerConfig
from .policies import RetryConfig


@dataclass(frozen=True)
class ResiliencySettings:
    call_timeout: float = 5.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)

    @classmethod
    def from_env(cls) -> "ResiliencySettings":
        env = os.environ
        return cls(
            call_timeout=float(env.get("CALL_TIMEOUT_SECONDS", 5.0)),
            retry=RetryConfig(
                max_attempts=int(env.get("RETRY_MAX_ATTEMPTS", 3)),
                initial_delay=float(env.get("RETRY_INITIAL_DELAY", 0.2)),
            ),
            breaker=CircuitBreakerConfig(
                failure_threshold=int(env.get("BREAKER_FAILURE_THRESHOLD", 5)),
                window=float(env.get("BREAKER_WINDOW_SECONDS", 30.0)),
                recovery_timeout=float(env.get("BREAKER_RECOVERY_SECONDS", 15.0)),
            ),
        )
