"""
Products Service — command handlers (CQRS write side)

Besides plain create/update/delete this service accepts two commands from
the Orders saga:

    reserve_stock  debit stock for an order (idempotent per reservation id)
    release_stock  compensation: give a reservation back
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
from .aggregate import ProductAggregate
from .events import (
    ProductCreated,
    ProductDeleted,
    ProductUpdated,
    StockReleased,
    StockReserved,
)
from .models import ProductFields, ProductPatch, ReleaseRequest, ReserveRequest

READ_MODEL = "products_read_model"
CHANNEL = "product_events"

logger = logging.getLogger(__name__)


async def load_product(session: AsyncSession, product_id: UUID) -> ProductAggregate:
    events = await event_store.load_events(session, product_id)
    agg = ProductAggregate.from_events(events)
    if not agg.exists:
        raise NotFound(f"Product {product_id} not found", {"product_id": str(product_id)})
    return agg


async def _record(
    session: AsyncSession,
    redis: aioredis.Redis,
    agg: ProductAggregate,
    event_type: str,
    event: dict,
) -> ProductAggregate:
    """Append one event, project it and publish it."""
    version = await event_store.append_event(
        session, agg.id, "Product", event_type, event, agg.version
    )
    agg.apply_event(event_type, event)
    agg.version = version
    if agg.deleted:
        await event_store.delete_document(session, READ_MODEL, agg.id)
    else:
        await event_store.save_document(session, READ_MODEL, agg.id, agg.to_document(), version)
    await session.commit()

    await publish_event(redis, CHANNEL, event_type, event)
    return agg


async def create_product(
    session: AsyncSession,
    redis: aioredis.Redis,
    fields: dict,
) -> UUID:
    data = parse_fields(ProductFields, fields)
    event = ProductCreated(
        product_id=uuid4(),
        timestamp=datetime.now(timezone.utc),
        **data.model_dump(),
    ).model_dump(mode="json")

    agg = ProductAggregate()
    agg.id = UUID(event["product_id"])
    await _record(session, redis, agg, "ProductCreated", event)
    logger.info("Created product %s", agg.id)
    return agg.id


async def update_product(
    session: AsyncSession,
    redis: aioredis.Redis,
    product_id: UUID,
    fields: dict,
) -> ProductAggregate:
    patch = parse_fields(ProductPatch, fields)
    changes = patch.model_dump(exclude_unset=True)
    if any(value is None for value in changes.values()):
        raise ValidationError("Product fields cannot be cleared with null", {"fields": sorted(changes)})

    agg = await load_product(session, product_id)
    event = ProductUpdated(
        product_id=product_id,
        changes=changes,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")
    return await _record(session, redis, agg, "ProductUpdated", event)


async def delete_product(
    session: AsyncSession,
    redis: aioredis.Redis,
    product_id: UUID,
) -> None:
    agg = await load_product(session, product_id)
    event = ProductDeleted(
        product_id=product_id,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")
    await _record(session, redis, agg, "ProductDeleted", event)
    logger.info("Deleted product %s", product_id)


async def reserve_stock(
    session: AsyncSession,
    redis: aioredis.Redis,
    product_id: UUID,
    fields: dict,
) -> dict:
    """
    Debit stock for an order.

    A repeated reservation id is acknowledged without a new debit, so the
    caller may safely retry after a timeout. Each payment attempt uses its
    own reservation id, so one attempt can never release another's stock.
    """
    req = parse_fields(ReserveRequest, fields)
    agg = await load_product(session, product_id)
    key = str(req.reservation_id)

    if key in agg.reservations:
        logger.info("Duplicate reservation %s on %s, skipping", key, product_id)
        return {"reserved": agg.reservations[key], "stock": agg.stock}

    if agg.stock < req.quantity:
        raise ValidationError(
            f"Insufficient stock for product {product_id}",
            {"requested": req.quantity, "available": agg.stock},
            code="INSUFFICIENT_STOCK",
        )

    event = StockReserved(
        product_id=product_id,
        order_id=req.order_id,
        reservation_id=req.reservation_id,
        quantity=req.quantity,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")
    await _record(session, redis, agg, "StockReserved", event)
    logger.info("Reserved %d of %s for order %s (%s)", req.quantity, product_id, req.order_id, key)
    return {"reserved": req.quantity, "stock": agg.stock}


async def release_stock(
    session: AsyncSession,
    redis: aioredis.Redis,
    product_id: UUID,
    fields: dict,
) -> dict:
    """Return a reservation to stock; no-op when none is held."""
    req = parse_fields(ReleaseRequest, fields)
    agg = await load_product(session, product_id)
    key = str(req.reservation_id)

    quantity = agg.reservations.get(key)
    if quantity is None:
        return {"released": 0, "stock": agg.stock}

    event = StockReleased(
        product_id=product_id,
        order_id=req.order_id,
        reservation_id=req.reservation_id,
        quantity=quantity,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")
    await _record(session, redis, agg, "StockReleased", event)
    logger.info("Released %d of %s for order %s (%s)", quantity, product_id, req.order_id, key)
    return {"released": quantity, "stock": agg.stock}
