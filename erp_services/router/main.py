"""
Router — API gateway

Single entry point for clients. Every request is dispatched to the service
owning the addressed resource type:

  ┌────────┐     ┌─────────┐     ┌──────────────────┐
  │ client │────▶│ gateway │────▶│ Users Service    │
  │        │     │         │────▶│ Products Service │
  │        │     │         │────▶│ Orders Service   │
  └────────┘     └─────────┘     └──────────────────┘

Downstream calls go through one ResilientClient per service.

    uvicorn --factory erp_services.router.main:create_app
"""

import logging
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Body, FastAPI

from .. import web
from ..config import Settings
from ..errors import NotFound
from ..log import configure_logging
from ..resiliency import ResilientClient
from .routing import RoutingTable

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    table: RoutingTable | None = None,
    clients: dict[str, ResilientClient] | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    table = table or RoutingTable.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_clients = app.state.clients is None
        if owns_clients:
            app.state.clients = {
                h.name: ResilientClient(h.name, h.base_url, settings.resiliency)
                for h in table.handles()
            }
        yield
        if owns_clients:
            for client in app.state.clients.values():
                await client.aclose()

    app = FastAPI(title="ERP API Gateway", lifespan=lifespan)
    app.state.clients = clients
    web.install(app, "gateway")

    def client_for(resource: str) -> ResilientClient:
        return app.state.clients[table.route(resource).name]

    @app.get("/api/circuits")
    async def circuits():
        """State of the gateway's circuit breaker for every service."""
        return {name: c.status() for name, c in app.state.clients.items()}

    @app.get("/api/orders/{order_id}/summary")
    async def order_summary(order_id: UUID):
        """
        An order plus its owner's name.

        The user is looked up by id; when the Users service is unavailable
        (or the user is gone) the summary is still returned with user=None.
        """
        order = await client_for("orders").get(f"/queries/orders/{order_id}")
        try:
            user = await client_for("users").get(
                f"/queries/users/{order['user_id']}", fallback=None
            )
        except NotFound:
            user = None
        return {
            "order": order,
            "user": {"id": user["id"], "name": user["name"]} if user else None,
        }

    # ── Generic dispatch ─────────────────────────

    @app.get("/api/{resource}")
    async def list_resources(resource: str):
        return await client_for(resource).get(f"/queries/{resource}")

    @app.get("/api/{resource}/{entity_id}")
    async def get_resource(resource: str, entity_id: UUID):
        return await client_for(resource).get(f"/queries/{resource}/{entity_id}")

    @app.post("/api/{resource}")
    async def create_resource(resource: str, fields: dict = Body(...)):
        return await client_for(resource).post(f"/commands/{resource}", json=fields)

    @app.post("/api/{resource}/{entity_id}/{command}")
    async def command_resource(
        resource: str,
        entity_id: UUID,
        command: str,
        fields: dict | None = Body(None),
    ):
        """Forward a named command (update, delete, transition...) to the owner."""
        return await client_for(resource).post(
            f"/commands/{resource}/{entity_id}/{command}", json=fields
        )

    return app
