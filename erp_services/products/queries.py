"""
Products Service — query handlers (CQRS read side)
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..errors import NotFound
from .commands import READ_MODEL


async def get_product(session: AsyncSession, product_id: UUID) -> dict:
    product = await event_store.get_document(session, READ_MODEL, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found", {"product_id": str(product_id)})
    return product


async def list_products(session: AsyncSession) -> list[dict]:
    return await event_store.list_documents(session, READ_MODEL)
