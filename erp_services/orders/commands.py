"""
Orders Service — command handlers (CQRS write side)

Orders are created here and change status only through ``transition_order``.
User and product data is read from their owners by id through the peer
clients; only the user id and a price snapshot per line are stored.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..errors import ConcurrencyConflict, InvalidTransition, NotFound, ValidationError
from ..publisher import publish_event
from ..validation import parse_fields
from . import saga
from .aggregate import OrderAggregate
from .events import (
    LineItem,
    OrderCancelled,
    OrderCreated,
    OrderDeleted,
    OrderFulfilled,
    OrderItemsReplaced,
    OrderPaid,
)
from .models import LineItemRequest, OrderEvent, OrderFields, OrderPatch, OrderStatus
from .peers import OrderPeers

READ_MODEL = "orders_read_model"
CHANNEL = "order_events"

logger = logging.getLogger(__name__)


async def load_order(session: AsyncSession, order_id: UUID) -> OrderAggregate:
    events = await event_store.load_events(session, order_id)
    agg = OrderAggregate.from_events(events)
    if not agg.exists:
        raise NotFound(f"Order {order_id} not found", {"order_id": str(order_id)})
    return agg


async def _record(
    session: AsyncSession,
    redis: aioredis.Redis,
    agg: OrderAggregate,
    event_type: str,
    event: dict,
) -> OrderAggregate:
    version = await event_store.append_event(
        session, agg.id, "Order", event_type, event, agg.version
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


async def _price_items(peers: OrderPeers, items: list[LineItemRequest]) -> list[LineItem]:
    """Snapshot the current price of every product."""
    priced = []
    for item in items:
        try:
            product = await peers.products.get_product(item.product_id)
        except NotFound as e:
            raise ValidationError(
                f"Unknown product {item.product_id}",
                {"product_id": str(item.product_id)},
                code="UNKNOWN_PRODUCT",
            ) from e
        priced.append(LineItem(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=product["price"],
        ))
    return priced


def _total(items: list[LineItem]) -> float:
    return round(sum(i.quantity * i.unit_price for i in items), 2)


async def create_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    peers: OrderPeers,
    fields: dict,
) -> UUID:
    data = parse_fields(OrderFields, fields)

    try:
        await peers.users.get_user(data.user_id)
    except NotFound as e:
        raise ValidationError(
            f"Unknown user {data.user_id}",
            {"user_id": str(data.user_id)},
            code="UNKNOWN_USER",
        ) from e
    items = await _price_items(peers, data.items)

    event = OrderCreated(
        order_id=uuid4(),
        user_id=data.user_id,
        items=items,
        total=_total(items),
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")

    agg = OrderAggregate()
    agg.id = UUID(event["order_id"])
    await _record(session, redis, agg, "OrderCreated", event)
    logger.info("Created order %s for user %s", agg.id, data.user_id)
    return agg.id


async def update_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    peers: OrderPeers,
    order_id: UUID,
    fields: dict,
) -> OrderAggregate:
    """Replace the line items of an order that has not been paid yet."""
    patch = parse_fields(OrderPatch, fields)
    agg = await load_order(session, order_id)
    if agg.status != OrderStatus.CREATED:
        raise ValidationError(
            f"Order {order_id} is {agg.status.value}; only Created orders can be changed",
            {"order_id": str(order_id), "status": agg.status.value},
        )

    items = await _price_items(peers, patch.items)
    event = OrderItemsReplaced(
        order_id=order_id,
        items=items,
        total=_total(items),
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")
    return await _record(session, redis, agg, "OrderItemsReplaced", event)


async def delete_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    order_id: UUID,
) -> None:
    agg = await load_order(session, order_id)
    if agg.status not in (OrderStatus.CREATED, OrderStatus.CANCELLED):
        raise ValidationError(
            f"Order {order_id} is {agg.status.value}; only Created or Cancelled orders can be deleted",
            {"order_id": str(order_id), "status": agg.status.value},
        )
    event = OrderDeleted(
        order_id=order_id,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")
    await _record(session, redis, agg, "OrderDeleted", event)
    logger.info("Deleted order %s", order_id)


async def transition_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    peers: OrderPeers,
    order_id: UUID,
    event_name: str,
) -> OrderStatus:
    """
    Move an order along its state machine.

    Transitions outside the table raise InvalidTransition and change nothing.
    A stale order (another writer appended since it was loaded) raises
    ConcurrencyConflict before any peer is called.

    Pay runs the payment saga first; if any step fails the order stays
    Created and no event is stored. If the new status then loses a
    concurrent write, this attempt's payment and reservations are undone.
    A Cancel that refunded and then lost the write cannot be undone; the
    conflict carries the refunded payment id for reconciliation.
    """
    agg = await load_order(session, order_id)
    try:
        event = OrderEvent(event_name)
    except ValueError as e:
        raise InvalidTransition(
            f"Unknown order event {event_name!r}",
            {"order_id": str(order_id), "event": event_name},
        ) from e
    agg.next_status(event)
    await event_store.ensure_version(session, order_id, "Order", agg.version)

    now = datetime.now(timezone.utc)
    payment_id = reservation_id = refunded = None

    if event is OrderEvent.PAY:
        reservation_id = uuid4()
        payment_id = await saga.pay(peers, agg, reservation_id)
        event_type = "OrderPaid"
        data = OrderPaid(
            order_id=order_id, payment_id=payment_id, reservation_id=reservation_id, timestamp=now
        )
    elif event is OrderEvent.FULFILL:
        event_type = "OrderFulfilled"
        data = OrderFulfilled(order_id=order_id, timestamp=now)
    else:
        unreleased = []
        if agg.status == OrderStatus.PAID:
            unreleased = await saga.refund(peers, agg)
            refunded = agg.payment_id
        event_type = "OrderCancelled"
        data = OrderCancelled(
            order_id=order_id,
            refunded_payment_id=refunded,
            unreleased_items=unreleased,
            timestamp=now,
        )

    try:
        await _record(session, redis, agg, event_type, data.model_dump(mode="json"))
    except ConcurrencyConflict as e:
        if payment_id is not None:
            await saga.undo_payment(peers, agg, payment_id, reservation_id)
        elif refunded is not None:
            logger.error(
                "Order %s was refunded (payment %s) but changed concurrently; needs reconciliation",
                order_id, refunded,
            )
            e.details["refunded_payment_id"] = refunded
        raise

    logger.info("Order %s -> %s", order_id, agg.status.value)
    return agg.status
