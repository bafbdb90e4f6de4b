"""
Orders Service — query handlers (CQRS read side)
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..errors import NotFound
from .commands import READ_MODEL


async def get_order(session: AsyncSession, order_id: UUID) -> dict:
    order = await event_store.get_document(session, READ_MODEL, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found", {"order_id": str(order_id)})
    return order


async def list_orders(session: AsyncSession, user_id: UUID | None = None) -> list[dict]:
    """All orders, optionally only those placed by one user."""
    orders = await event_store.list_documents(session, READ_MODEL)
    if user_id is not None:
        orders = [o for o in orders if o["user_id"] == str(user_id)]
    return orders
