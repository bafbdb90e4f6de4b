from .breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from .client import ResilientClient
from .policies import Pipeline, RetryConfig, RetryPolicy, TimeoutPolicy
from .settings import ResiliencySettings

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "Pipeline",
    "ResilientClient",
    "RetryConfig",
    "ResiliencySettings",
    "RetryPolicy",
    "TimeoutPolicy",
]
