"""
Router — static routing table

Maps a resource type to the service that owns it. The table is fixed at
start-up; retries and circuit breaking belong to the resiliency layer that
wraps the downstream call, not to the router.
"""

from dataclasses import dataclass
from typing import Mapping

from ..config import Settings
from ..errors import UnknownResource


@dataclass(frozen=True)
class ServiceHandle:
    name: str
    base_url: str


class RoutingTable:
    def __init__(self, routes: Mapping[str, ServiceHandle]):
        self._routes = dict(routes)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RoutingTable":
        return cls({
            "users": ServiceHandle("users", settings.require("users_service_url")),
            "products": ServiceHandle("products", settings.require("products_service_url")),
            "orders": ServiceHandle("orders", settings.require("orders_service_url")),
        })

    def route(self, resource: str) -> ServiceHandle:
        try:
            return self._routes[resource]
        except KeyError:
            raise UnknownResource(
                f"No service owns resource {resource!r}",
                {"resource": resource, "known": sorted(self._routes)},
            ) from None

    def handles(self) -> list[ServiceHandle]:
        """Distinct services in the table."""
        return list({h.name: h for h in self._routes.values()}.values())
