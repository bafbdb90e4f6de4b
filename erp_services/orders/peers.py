"""
Orders Service — clients for the services it depends on

Each client exposes only what the Orders service is allowed to do to a
peer: read users and products by id, ask Products to reserve or release
stock, ask Payments to capture or refund. None of them can update or
delete another service's entities. Every call goes through the peer's
ResilientClient.
"""

from dataclasses import dataclass
from uuid import UUID

from ..config import Settings
from ..resiliency import ResilientClient


class UsersClient:
    def __init__(self, client: ResilientClient):
        self._client = client

    async def get_user(self, user_id: UUID) -> dict:
        return await self._client.get(f"/queries/users/{user_id}")


class ProductsClient:
    def __init__(self, client: ResilientClient):
        self._client = client

    async def get_product(self, product_id: UUID) -> dict:
        return await self._client.get(f"/queries/products/{product_id}")

    async def reserve_stock(
        self, product_id: UUID, order_id: UUID, reservation_id: UUID, quantity: int
    ) -> dict:
        return await self._client.post(
            f"/commands/products/{product_id}/reserve",
            json={
                "order_id": str(order_id),
                "reservation_id": str(reservation_id),
                "quantity": quantity,
            },
        )

    async def release_stock(self, product_id: UUID, order_id: UUID, reservation_id: UUID) -> dict:
        return await self._client.post(
            f"/commands/products/{product_id}/release",
            json={"order_id": str(order_id), "reservation_id": str(reservation_id)},
        )


class PaymentsClient:
    """External payment provider."""

    def __init__(self, client: ResilientClient):
        self._client = client

    async def capture(self, order_id: UUID, amount: float) -> str:
        resp = await self._client.post(
            "/payments",
            json={"order_id": str(order_id), "amount": amount},
        )
        return resp["payment_id"]

    async def refund(self, payment_id: str, order_id: UUID) -> None:
        await self._client.post(
            f"/payments/{payment_id}/refund",
            json={"order_id": str(order_id)},
        )


@dataclass
class OrderPeers:
    users: UsersClient
    products: ProductsClient
    payments: PaymentsClient
    resilient_clients: tuple[ResilientClient, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrderPeers":
        users = ResilientClient("users", settings.require("users_service_url"), settings.resiliency)
        products = ResilientClient("products", settings.require("products_service_url"), settings.resiliency)
        payments = ResilientClient("payments", settings.require("payment_service_url"), settings.resiliency)
        return cls(
            users=UsersClient(users),
            products=ProductsClient(products),
            payments=PaymentsClient(payments),
            resilient_clients=(users, products, payments),
        )

    async def aclose(self) -> None:
        for client in self.resilient_clients:
            await client.aclose()
