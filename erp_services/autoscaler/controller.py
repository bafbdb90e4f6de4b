"""
Autoscaler controller.

One polling loop per service. Each round samples the per-replica CPU
utilization of the service and compares it with the watermarks:

    above high or below low → desired = ceil(replicas * utilization / target)
                              where target = (high + low) / 2
    clamped to [min_replicas, max_replicas]

The desired count spreads the same total demand so that each replica lands
near the target, so a second round with unchanged demand falls inside the
band and issues nothing. A scale command for
the current count is a no-op.

Replica counts live only in this controller: seeded from configuration in
the constructor, changed only after a command was accepted, dropped by
``shutdown``. Decisions and commands for one service are serialized by a
per-service lock.
"""

import asyncio
import logging
import math
from dataclasses import dataclass

from .config import ScalingPolicy
from .sources import ReplicaScaler, UsageSample, UsageSource

logger = logging.getLogger(__name__)


def desired_replicas(policy: ScalingPolicy, current: int, sample: UsageSample) -> int:
    """Replica count the service should run given its load; pure function."""
    current = max(current, 1)
    utilization = sample.cpu_percent
    if policy.cpu_low_watermark <= utilization <= policy.cpu_high_watermark:
        return policy.clamp(current)
    wanted = math.ceil(current * utilization / policy.target_utilization)
    return policy.clamp(wanted)


@dataclass(frozen=True)
class ScaleDecision:
    service: str
    previous: int
    replicas: int
    cpu_percent: float | None


class AutoscalerController:
    def __init__(
        self,
        policies: dict[str, ScalingPolicy],
        source: UsageSource,
        scaler: ReplicaScaler,
    ):
        self.policies = dict(policies)
        self.source = source
        self.scaler = scaler
        self._replicas = {name: p.starting_replicas() for name, p in self.policies.items()}
        self._locks = {name: asyncio.Lock() for name in self.policies}
        self._tasks: dict[str, asyncio.Task] = {}
        self._stopping = asyncio.Event()

    def replicas(self, service: str) -> int:
        return self._replicas[service]

    async def scale_to(self, service: str, replicas: int) -> ScaleDecision | None:
        """
        Issue a scale command, bounded by the service's policy.

        Returns None when the clamped count equals the current one.
        """
        async with self._locks[service]:
            return await self._scale_locked(service, replicas, cpu_percent=None)

    async def evaluate(self, service: str) -> ScaleDecision | None:
        """One observe → decide → act round for a service."""
        async with self._locks[service]:
            sample = await self.source.sample(service)
            policy = self.policies[service]
            target = desired_replicas(policy, self._replicas[service], sample)
            logger.debug(
                "%s: cpu=%.1f%% replicas=%d desired=%d",
                service, sample.cpu_percent, self._replicas[service], target,
            )
            return await self._scale_locked(service, target, sample.cpu_percent)

    async def _scale_locked(
        self, service: str, replicas: int, cpu_percent: float | None
    ) -> ScaleDecision | None:
        replicas = self.policies[service].clamp(replicas)
        previous = self._replicas[service]
        if replicas == previous:
            return None
        await self.scaler.scale(service, replicas)
        self._replicas[service] = replicas
        logger.info("Scaled %s from %d to %d replicas", service, previous, replicas)
        return ScaleDecision(service, previous, replicas, cpu_percent)

    # ── Loop management ──────────────────────────

    async def _run_service(self, service: str) -> None:
        interval = self.policies[service].poll_interval
        while not self._stopping.is_set():
            try:
                await self.evaluate(service)
            except Exception:
                logger.exception("Autoscaling round for %s failed", service)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        """Start one loop per service; starting twice does nothing."""
        for service in self.policies:
            task = self._tasks.get(service)
            if task is None or task.done():
                self._tasks[service] = asyncio.create_task(
                    self._run_service(service), name=f"autoscaler:{service}"
                )
        logger.info("Autoscaler watching %s", ", ".join(sorted(self.policies)))

    async def run_forever(self) -> None:
        self.start()
        await self._stopping.wait()

    async def shutdown(self) -> None:
        self._stopping.set()
        for task in self._tasks.values():
            task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        self._replicas.clear()
        logger.info("Autoscaler stopped")
