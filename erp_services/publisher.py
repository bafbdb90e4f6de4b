"""
Redis Pub/Sub event publication.

Events are published after the local transaction commits. Pub/Sub is
fire-and-forget: subscribers that are down miss the message.
"""

import json
import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


async def publish_event(
    redis: aioredis.Redis,
    channel: str,
    event_type: str,
    data: dict,
) -> None:
    await redis.publish(
        channel,
        json.dumps({"event_type": event_type, "data": data}, default=str),
    )
    logger.debug("Published %s on %s", event_type, channel)
