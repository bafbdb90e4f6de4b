"""
Orders Service — order aggregate

State transitions:
    Created --Pay-->     Paid
    Paid    --Fulfill--> Fulfilled
    Created --Cancel-->  Cancelled
    Paid    --Cancel-->  Cancelled  (refund)

Any other (status, event) pair is an InvalidTransition.
"""

from uuid import UUID

from ..errors import InvalidTransition
from .models import OrderEvent, OrderStatus

TRANSITIONS: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.CREATED, OrderEvent.PAY): OrderStatus.PAID,
    (OrderStatus.PAID, OrderEvent.FULFILL): OrderStatus.FULFILLED,
    (OrderStatus.CREATED, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PAID, OrderEvent.CANCEL): OrderStatus.CANCELLED,
}


class OrderAggregate:
    def __init__(self) -> None:
        self.id: UUID | None = None
        self.user_id: UUID | None = None
        self.items: list[dict] = []
        self.total: float = 0
        self.status: OrderStatus | None = None
        self.payment_id: str | None = None
        self.reservation_id: UUID | None = None
        self.timestamps: dict[str, str] = {}
        self.deleted: bool = False
        self.version: int = 0

    @property
    def exists(self) -> bool:
        return self.id is not None and not self.deleted

    def next_status(self, event: OrderEvent) -> OrderStatus:
        target = TRANSITIONS.get((self.status, event))
        if target is None:
            raise InvalidTransition(
                f"Cannot {event.value} an order that is {self.status.value}",
                {"order_id": str(self.id), "status": self.status.value, "event": event.value},
            )
        return target

    # ── Event application ────────────────────────

    def apply_order_created(self, data: dict) -> None:
        self.id = UUID(data["order_id"])
        self.user_id = UUID(data["user_id"])
        self.items = data["items"]
        self.total = data["total"]
        self.status = OrderStatus.CREATED
        self.timestamps = {"created_at": data["timestamp"], "updated_at": data["timestamp"]}

    def apply_order_items_replaced(self, data: dict) -> None:
        self.items = data["items"]
        self.total = data["total"]
        self.timestamps["updated_at"] = data["timestamp"]

    def apply_order_deleted(self, data: dict) -> None:
        self.deleted = True

    def apply_order_paid(self, data: dict) -> None:
        self.status = OrderStatus.PAID
        self.payment_id = data["payment_id"]
        self.reservation_id = UUID(data["reservation_id"])
        self.timestamps["paid_at"] = self.timestamps["updated_at"] = data["timestamp"]

    def apply_order_fulfilled(self, data: dict) -> None:
        self.status = OrderStatus.FULFILLED
        self.timestamps["fulfilled_at"] = self.timestamps["updated_at"] = data["timestamp"]

    def apply_order_cancelled(self, data: dict) -> None:
        self.status = OrderStatus.CANCELLED
        self.timestamps["cancelled_at"] = self.timestamps["updated_at"] = data["timestamp"]

    def apply_event(self, event_type: str, event_data: dict) -> None:
        handler = {
            "OrderCreated": self.apply_order_created,
            "OrderItemsReplaced": self.apply_order_items_replaced,
            "OrderDeleted": self.apply_order_deleted,
            "OrderPaid": self.apply_order_paid,
            "OrderFulfilled": self.apply_order_fulfilled,
            "OrderCancelled": self.apply_order_cancelled,
        }.get(event_type)
        if handler:
            handler(event_data)

    @classmethod
    def from_events(cls, events: list[dict]) -> "OrderAggregate":
        agg = cls()
        for e in events:
            agg.apply_event(e["event_type"], e["event_data"])
            agg.version = e["version"]
        return agg

    def to_document(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "items": self.items,
            "total": self.total,
            "status": self.status.value,
            "payment_id": self.payment_id,
            **self.timestamps,
        }
