"""
Products Service — product aggregate

Stock is debited per reservation. ``reservations`` maps a reservation id
(one payment attempt of one order) to the quantity held, so repeating a
reservation changes nothing.
"""

from uuid import UUID


class ProductAggregate:
    def __init__(self) -> None:
        self.id: UUID | None = None
        self.name: str = ""
        self.description: str = ""
        self.price: float = 0
        self.stock: int = 0
        self.reservations: dict[str, int] = {}
        self.created_at: str | None = None
        self.updated_at: str | None = None
        self.deleted: bool = False
        self.version: int = 0

    @property
    def exists(self) -> bool:
        return self.id is not None and not self.deleted

    def apply_product_created(self, data: dict) -> None:
        self.id = UUID(data["product_id"])
        self.name = data["name"]
        self.description = data["description"]
        self.price = data["price"]
        self.stock = data["stock"]
        self.created_at = self.updated_at = data["timestamp"]

    def apply_product_updated(self, data: dict) -> None:
        for key, value in data["changes"].items():
            setattr(self, key, value)
        self.updated_at = data["timestamp"]

    def apply_product_deleted(self, data: dict) -> None:
        self.deleted = True
        self.updated_at = data["timestamp"]

    def apply_stock_reserved(self, data: dict) -> None:
        self.stock -= data["quantity"]
        self.reservations[data["reservation_id"]] = data["quantity"]
        self.updated_at = data["timestamp"]

    def apply_stock_released(self, data: dict) -> None:
        self.stock += data["quantity"]
        self.reservations.pop(data["reservation_id"], None)
        self.updated_at = data["timestamp"]

    def apply_event(self, event_type: str, event_data: dict) -> None:
        handler = {
            "ProductCreated": self.apply_product_created,
            "ProductUpdated": self.apply_product_updated,
            "ProductDeleted": self.apply_product_deleted,
            "StockReserved": self.apply_stock_reserved,
            "StockReleased": self.apply_stock_released,
        }.get(event_type)
        if handler:
            handler(event_data)

    @classmethod
    def from_events(cls, events: list[dict]) -> "ProductAggregate":
        agg = cls()
        for e in events:
            agg.apply_event(e["event_type"], e["event_data"])
            agg.version = e["version"]
        return agg

    def to_document(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "stock": self.stock,
            "reserved": sum(self.reservations.values()),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
