"""
Users Service — FastAPI entry point

Owns user profiles. Other services only ever hold a user id and ask this
service for the rest.

    uvicorn --factory erp_services.users.main:create_app
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

    app = FastAPI(title="Users Service", lifespan=lifespan)
    app.state.redis = redis
    web.install(app, "users-service")

    # ── Command endpoints (write side) ───────────

    @app.post("/commands/users")
    async def cmd_create_user(fields: dict = Body(...)):
        async with async_session() as session:
            user_id = await commands.create_user(session, app.state.redis, fields)
            return {"id": str(user_id)}

    @app.post("/commands/users/{user_id}/update")
    async def cmd_update_user(user_id: UUID, fields: dict = Body(...)):
        async with async_session() as session:
            agg = await commands.update_user(session, app.state.redis, user_id, fields)
            return agg.to_document()

    @app.post("/commands/users/{user_id}/delete")
    async def cmd_delete_user(user_id: UUID):
        async with async_session() as session:
            await commands.delete_user(session, app.state.redis, user_id)
            return {"id": str(user_id), "deleted": True}

    # ── Query endpoints (read side) ──────────────

    @app.get("/queries/users")
    async def query_list_users():
        async with async_session() as session:
            return await queries.list_users(session)

    @app.get("/queries/users/{user_id}")
    async def query_get_user(user_id: UUID):
        async with async_session() as session:
            return await queries.get_user(session, user_id)

    @app.get("/events/{user_id}")
    async def get_user_events(user_id: UUID):
        async with async_session() as session:
            return await event_store.load_events(session, user_id)

    return app
