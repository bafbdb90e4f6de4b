"""
Orders Service — payment saga

Paying an order touches two other services, so it is a saga rather than a
single transaction:

  1. Products: reserve stock for every line under one reservation id
  2. Payments: capture the order total
     ├─ success → the caller records OrderPaid
     └─ failure → release every reservation attempted so far
                  (compensating transactions), re-raise; the order
                  stays Created

Every attempt reserves under a fresh reservation id, so compensating one
attempt never touches stock held by another attempt on the same order.

Cancelling a paid order runs the refund path: refund the payment, then
release the stock held by the attempt that paid.
"""

import asyncio
import logging
from uuid import UUID

from ..errors import ServiceError
from .aggregate import OrderAggregate
from .peers import OrderPeers

logger = logging.getLogger(__name__)


async def pay(peers: OrderPeers, order: OrderAggregate, reservation_id: UUID) -> str:
    """Run the payment saga and return the payment id."""
    attempted: list[UUID] = []
    try:
        # ── Step 1: reserve stock ────────────────
        for item in order.items:
            product_id = UUID(item["product_id"])
            # a timed-out reservation may still have been applied
            attempted.append(product_id)
            await peers.products.reserve_stock(
                product_id, order.id, reservation_id, item["quantity"]
            )

        # ── Step 2: capture payment ──────────────
        payment_id = await peers.payments.capture(order.id, order.total)
    except BaseException as e:
        # cancellation included: reservations must not outlive the caller
        logger.warning("Payment saga for order %s failed: %r, compensating", order.id, e)
        failed = await asyncio.shield(
            release_stock(peers, order.id, reservation_id, attempted)
        )
        if failed and isinstance(e, ServiceError):
            e.details.setdefault("unreleased_items", [str(p) for p in failed])
        raise

    logger.info("Payment saga for order %s completed (payment %s)", order.id, payment_id)
    return payment_id


async def refund(peers: OrderPeers, order: OrderAggregate) -> list[UUID]:
    """
    Refund a paid order and return its stock.

    A failed refund propagates and the order stays Paid. Stock releases that
    fail after a successful refund are returned so they can be recorded on
    the cancellation.
    """
    await peers.payments.refund(order.payment_id, order.id)
    return await release_stock(
        peers, order.id, order.reservation_id, [UUID(i["product_id"]) for i in order.items]
    )


async def undo_payment(
    peers: OrderPeers, order: OrderAggregate, payment_id: str, reservation_id: UUID
) -> None:
    """
    Compensate a completed payment saga whose result could not be stored.

    Only this attempt's payment and reservations are undone; whatever the
    winning writer holds stays in place.
    """
    logger.warning("Undoing payment %s for order %s", payment_id, order.id)
    try:
        await peers.payments.refund(payment_id, order.id)
    except ServiceError:
        logger.exception("Refund of payment %s for order %s failed", payment_id, order.id)
    await release_stock(
        peers, order.id, reservation_id, [UUID(i["product_id"]) for i in order.items]
    )


async def release_stock(
    peers: OrderPeers, order_id: UUID, reservation_id: UUID, product_ids: list[UUID]
) -> list[UUID]:
    """Release one reservation; returns the products that could not be released."""
    failed = []
    for product_id in product_ids:
        try:
            await peers.products.release_stock(product_id, order_id, reservation_id)
        except ServiceError as e:
            logger.error(
                "Could not release stock of %s for order %s: %s", product_id, order_id, e
            )
            failed.append(product_id)
    return failed
