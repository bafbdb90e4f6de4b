"""
Load observation and scale commands.

Both ends are external collaborators reached over HTTP: a usage endpoint
per service (each service exposes ``GET /usage``) and an orchestrator that
accepts replica counts (Kubernetes, Compose, ...).
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from .config import ScalingPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSample:
    """
    ``cpu_percent`` is the utilization of one replica, as reported by the
    replica that answered ``GET /usage``; it stands for every replica of
    the service behind the same load balancer.
    """
    cpu_percent: float
    memory_mb: float = 0.0


class UsageSource(Protocol):
    async def sample(self, service: str) -> UsageSample: ...


class ReplicaScaler(Protocol):
    async def scale(self, service: str, replicas: int) -> None: ...


class HttpUsageSource:
    def __init__(self, policies: dict[str, ScalingPolicy], timeout: float = 5.0):
        missing = sorted(name for name, p in policies.items() if not p.usage_url)
        if missing:
            raise ValueError(f"usage_url is not configured for: {', '.join(missing)}")
        self._urls = {name: p.usage_url for name, p in policies.items()}
        self._http = httpx.AsyncClient(timeout=timeout)

    async def sample(self, service: str) -> UsageSample:
        resp = await self._http.get(self._urls[service])
        resp.raise_for_status()
        data = resp.json()
        return UsageSample(
            cpu_percent=float(data["cpu_percent"]),
            memory_mb=float(data.get("memory_mb", 0.0)),
        )

    async def aclose(self) -> None:
        await self._http.aclose()


class HttpReplicaScaler:
    """
    Posts the desired replica count to the orchestrator and returns as soon
    as the command is accepted; rollout is not awaited.
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def scale(self, service: str, replicas: int) -> None:
        resp = await self._http.post(
            f"/services/{service}/scale", json={"replicas": replicas}
        )
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self._http.aclose()


class LoggingScaler:
    """Dry-run scaler used when no orchestrator is configured."""

    async def scale(self, service: str, replicas: int) -> None:
        logger.info("[dry-run] would scale %s to %d replicas", service, replicas)
