"""
Products Service — event definitions
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ProductCreated(BaseModel):
    product_id: UUID
    name: str
    description: str
    price: float
    stock: int
    timestamp: datetime


class ProductUpdated(BaseModel):
    product_id: UUID
    changes: dict
    timestamp: datetime


class ProductDeleted(BaseModel):
    product_id: UUID
    timestamp: datetime


class StockReserved(BaseModel):
    """Stock debited for an order (requested by the Orders service)."""
    product_id: UUID
    order_id: UUID
    reservation_id: UUID
    quantity: int
    timestamp: datetime


class StockReleased(BaseModel):
    """A reservation returned to stock (saga compensation or refund)."""
    product_id: UUID
    order_id: UUID
    reservation_id: UUID
    quantity: int
    timestamp: datetime
