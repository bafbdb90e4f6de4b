"""
Environment-driven settings.

Every service process reads the same variables; each service only uses
the ones it needs (the Users service never looks at PAYMENT_SERVICE_URL).
"""

import os
from dataclasses import dataclass, field

from .resiliency.settings import ResiliencySettings


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./service.db"
    redis_url: str = "redis://localhost:6379"
    users_service_url: str | None = None
    products_service_url: str | None = None
    orders_service_url: str | None = None
    payment_service_url: str | None = None
    log_level: str = "INFO"
    resiliency: ResiliencySettings = field(default_factory=ResiliencySettings)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            redis_url=os.environ.get("REDIS_URL", cls.redis_url),
            users_service_url=os.environ.get("USERS_SERVICE_URL"),
            products_service_url=os.environ.get("PRODUCTS_SERVICE_URL"),
            orders_service_url=os.environ.get("ORDERS_SERVICE_URL"),
            payment_service_url=os.environ.get("PAYMENT_SERVICE_URL"),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level),
            resiliency=ResiliencySettings.from_env(),
        )

    def require(self, name: str) -> str:
        """Return a peer URL setting, failing loudly when it is unset."""
        value = getattr(self, name)
        if not value:
            raise RuntimeError(f"{name.upper()} must be set")
        return value
