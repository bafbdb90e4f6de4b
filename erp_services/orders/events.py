"""
Orders Service — event definitions

An order holds only the user's id and a price snapshot per line; it never
copies mutable user or product fields.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class LineItem(BaseModel):
    product_id: UUID
    quantity: int
    unit_price: float


class OrderCreated(BaseModel):
    order_id: UUID
    user_id: UUID
    items: list[LineItem]
    total: float
    timestamp: datetime


class OrderItemsReplaced(BaseModel):
    order_id: UUID
    items: list[LineItem]
    total: float
    timestamp: datetime


class OrderDeleted(BaseModel):
    order_id: UUID
    timestamp: datetime


class OrderPaid(BaseModel):
    """Stock was reserved for every line and the payment captured."""
    order_id: UUID
    payment_id: str
    reservation_id: UUID
    timestamp: datetime


class OrderFulfilled(BaseModel):
    order_id: UUID
    timestamp: datetime


class OrderCancelled(BaseModel):
    """``refunded_payment_id`` is set when a paid order was refunded."""
    order_id: UUID
    refunded_payment_id: str | None = None
    unreleased_items: list[UUID] = []
    timestamp: datetime
