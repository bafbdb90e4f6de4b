"""
Run the autoscaler controller:

    AUTOSCALER_CONFIG=autoscaler.json python -m erp_services.autoscaler
"""

import asyncio
import logging
import signal

from ..log import configure_logging
from .config import AutoscalerConfig
from .controller import AutoscalerController
from .sources import HttpReplicaScaler, HttpUsageSource, LoggingScaler

logger = logging.getLogger("erp_services.autoscaler")


async def main() -> None:
    configure_logging()
    config = AutoscalerConfig.load()
    source = HttpUsageSource(config.services)
    scaler = HttpReplicaScaler(config.scaler_url) if config.scaler_url else LoggingScaler()
    controller = AutoscalerController(config.services, source, scaler)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(controller.shutdown()))

    try:
        await controller.run_forever()
    finally:
        await source.aclose()
        if isinstance(scaler, HttpReplicaScaler):
            await scaler.aclose()


if __name__ == "__main__":
    asyncio.run(main())
