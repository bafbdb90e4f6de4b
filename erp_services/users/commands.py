"""
Users Service — command handlers (CQRS write side)

Each command:
1. rebuilds the aggregate from the event store
2. appends the new event (optimistic lock on the version)
3. updates the read model in the same transaction
4. publishes the event on Redis Pub/Sub after commit
"""

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..errors import NotFound, ValidationError
from ..publisher import publish_event
from ..validation import parse_fields
from .aggregate import UserAggregate
from .events import UserCreated, UserDeleted, UserUpdated
from .models import UserFields, UserPatch

READ_MODEL = "users_read_model"
CHANNEL = "user_events"

logger = logging.getLogger(__name__)


async def load_user(session: AsyncSession, user_id: UUID) -> UserAggregate:
    events = await event_store.load_events(session, user_id)
    agg = UserAggregate.from_events(events)
    if not agg.exists:
        raise NotFound(f"User {user_id} not found", {"user_id": str(user_id)})
    return agg


async def create_user(
    session: AsyncSession,
    redis: aioredis.Redis,
    fields: dict,
) -> UUID:
    data = parse_fields(UserFields, fields)
    user_id = uuid4()
    event = UserCreated(
        user_id=user_id,
        name=data.name,
        contact=data.contact.model_dump(),
        addresses=[a.model_dump() for a in data.addresses],
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")

    version = await event_store.append_event(
        session, user_id, "User", "UserCreated", event, 0
    )
    agg = UserAggregate()
    agg.apply_user_created(event)
    agg.version = version
    await event_store.save_document(session, READ_MODEL, user_id, agg.to_document(), version)
    await session.commit()

    await publish_event(redis, CHANNEL, "UserCreated", event)
    logger.info("Created user %s", user_id)
    return user_id


async def update_user(
    session: AsyncSession,
    redis: aioredis.Redis,
    user_id: UUID,
    fields: dict,
) -> UserAggregate:
    patch = parse_fields(UserPatch, fields)
    changes = patch.model_dump(exclude_unset=True)
    if any(value is None for value in changes.values()):
        raise ValidationError("User fields cannot be cleared with null", {"fields": sorted(changes)})

    agg = await load_user(session, user_id)
    event = UserUpdated(
        user_id=user_id,
        changes=changes,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")

    version = await event_store.append_event(
        session, user_id, "User", "UserUpdated", event, agg.version
    )
    agg.apply_user_updated(event)
    agg.version = version
    await event_store.save_document(session, READ_MODEL, user_id, agg.to_document(), version)
    await session.commit()

    await publish_event(redis, CHANNEL, "UserUpdated", event)
    return agg


async def delete_user(
    session: AsyncSession,
    redis: aioredis.Redis,
    user_id: UUID,
) -> None:
    agg = await load_user(session, user_id)
    event = UserDeleted(
        user_id=user_id,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")

    await event_store.append_event(
        session, user_id, "User", "UserDeleted", event, agg.version
    )
    await event_store.delete_document(session, READ_MODEL, user_id)
    await session.commit()

    await publish_event(redis, CHANNEL, "UserDeleted", event)
    logger.info("Deleted user %s", user_id)
