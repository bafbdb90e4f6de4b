"""
Users Service — query handlers (CQRS read side)
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..errors import NotFound
from .commands import READ_MODEL


async def get_user(session: AsyncSession, user_id: UUID) -> dict:
    user = await event_store.get_document(session, READ_MODEL, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found", {"user_id": str(user_id)})
    return user


async def list_users(session: AsyncSession) -> list[dict]:
    return await event_store.list_documents(session, READ_MODEL)
