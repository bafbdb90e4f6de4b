"""
Products Service — FastAPI entry point

Owns the catalogue and stock levels. Orders reserve and release stock through
explicit commands; nobody else writes to this store.

    uvicorn --factory erp_services.products.main:create_app
"""

from contextlib import asynccontextmanager
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Body, FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .. import event_store, web
from ..config import Settings
from ..log import configure_logging
from . import commands, queries


def create_app(settings: Settings | None = None, redis: aioredis.Redis | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    engine = create_async_engine(settings.database_url, echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await event_store.create_schema(engine, commands.READ_MODEL)
        owns_redis = app.state.redis is None
        if owns_redis:
            app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        yield
        if owns_redis:
            await app.state.redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Products Service", lifespan=lifespan)
    app.state.redis = redis
    web.install(app, "products-service")

    # ── Command endpoints (write side) ───────────

    @app.post("/commands/products")
    async def cmd_create_product(fields: dict = Body(...)):
        async with async_session() as session:
            product_id = await commands.create_product(session, app.state.redis, fields)
            return {"id": str(product_id)}

    @app.post("/commands/products/{product_id}/update")
    async def cmd_update_product(product_id: UUID, fields: dict = Body(...)):
        async with async_session() as session:
            agg = await commands.update_product(session, app.state.redis, product_id, fields)
            return agg.to_document()

    @app.post("/commands/products/{product_id}/delete")
    async def cmd_delete_product(product_id: UUID):
        async with async_session() as session:
            await commands.delete_product(session, app.state.redis, product_id)
            return {"id": str(product_id), "deleted": True}

    @app.post("/commands/products/{product_id}/reserve")
    async def cmd_reserve_stock(product_id: UUID, fields: dict = Body(...)):
        """Debit stock for an order (called by the Orders saga)."""
        async with async_session() as session:
            return await commands.reserve_stock(session, app.state.redis, product_id, fields)

    @app.post("/commands/products/{product_id}/release")
    async def cmd_release_stock(product_id: UUID, fields: dict = Body(...)):
        """Compensation: return an order's reservation to stock."""
        async with async_session() as session:
            return await commands.release_stock(session, app.state.redis, product_id, fields)

    # ── Query endpoints (read side) ──────────────

    @app.get("/queries/products")
    async def query_list_products():
        async with async_session() as session:
            return await queries.list_products(session)

    @app.get("/queries/products/{product_id}")
    async def query_get_product(product_id: UUID):
        async with async_session() as session:
            return await queries.get_product(session, product_id)

    @app.get("/events/{product_id}")
    async def get_product_events(product_id: UUID):
        async with async_session() as session:
            return await event_store.load_events(session, product_id)

    return app
