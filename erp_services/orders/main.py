"""
Orders Service — FastAPI entry point

Owns orders. Reads users and products by id, and drives stock and payment
through the resiliency layer when an order is paid or cancelled.

    uvicorn --factory erp_services.orders.main:create_app
"""

from contextlib import asynccontextmanager
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Body, FastAPI
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .. import event_store, web
from ..config import Settings
from ..log import configure_logging
from . import commands, queries
from .peers import OrderPeers


class TransitionRequest(BaseModel):
    event: str


def create_app(
    settings: Settings | None = None,
    redis: aioredis.Redis | None = None,
    peers: OrderPeers | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    engine = create_async_engine(settings.database_url, echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await event_store.create_schema(engine, commands.READ_MODEL)
        owns_redis = app.state.redis is None
        owns_peers = app.state.peers is None
        if owns_redis:
            app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        if owns_peers:
            app.state.peers = OrderPeers.from_settings(settings)
        yield
        if owns_peers:
            await app.state.peers.aclose()
        if owns_redis:
            await app.state.redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Orders Service", lifespan=lifespan)
    app.state.redis = redis
    app.state.peers = peers
    web.install(app, "orders-service")

    # ── Command endpoints (write side) ───────────

    @app.post("/commands/orders")
    async def cmd_create_order(fields: dict = Body(...)):
        async with async_session() as session:
            order_id = await commands.create_order(
                session, app.state.redis, app.state.peers, fields
            )
            return {"id": str(order_id)}

    @app.post("/commands/orders/{order_id}/update")
    async def cmd_update_order(order_id: UUID, fields: dict = Body(...)):
        async with async_session() as session:
            agg = await commands.update_order(
                session, app.state.redis, app.state.peers, order_id, fields
            )
            return agg.to_document()

    @app.post("/commands/orders/{order_id}/delete")
    async def cmd_delete_order(order_id: UUID):
        async with async_session() as session:
            await commands.delete_order(session, app.state.redis, order_id)
            return {"id": str(order_id), "deleted": True}

    @app.post("/commands/orders/{order_id}/transition")
    async def cmd_transition_order(order_id: UUID, req: TransitionRequest):
        """Pay, Fulfill or Cancel an order."""
        async with async_session() as session:
            status = await commands.transition_order(
                session, app.state.redis, app.state.peers, order_id, req.event
            )
            return {"id": str(order_id), "status": status.value}

    # ── Query endpoints (read side) ──────────────

    @app.get("/queries/orders")
    async def query_list_orders(user_id: UUID | None = None):
        async with async_session() as session:
            return await queries.list_orders(session, user_id)

    @app.get("/queries/orders/{order_id}")
    async def query_get_order(order_id: UUID):
        async with async_session() as session:
            return await queries.get_order(session, order_id)

    @app.get("/events/{order_id}")
    async def get_order_events(order_id: UUID):
        async with async_session() as session:
            return await event_store.load_events(session, order_id)

    return app
