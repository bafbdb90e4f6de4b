"""
Orders Service — field schemas and enums
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatus(str, Enum):
    CREATED = "Created"
    PAID = "Paid"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"


class OrderEvent(str, Enum):
    """Commands accepted by ``transition``."""
    PAY = "Pay"
    FULFILL = "Fulfill"
    CANCEL = "Cancel"


class LineItemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: UUID
    quantity: int = Field(gt=0)


def _one_line_per_product(items: list[LineItemRequest]) -> list[LineItemRequest]:
    seen = set()
    for item in items:
        if item.product_id in seen:
            raise ValueError(f"product {item.product_id} appears on more than one line")
        seen.add(item.product_id)
    return items


class OrderFields(BaseModel):
    """Fields accepted by create. Prices are looked up, never supplied."""
    model_config = ConfigDict(extra="forbid")

    user_id: UUID
    items: list[LineItemRequest] = Field(min_length=1)

    @field_validator("items")
    @classmethod
    def check_items(cls, items: list[LineItemRequest]) -> list[LineItemRequest]:
        return _one_line_per_product(items)


class OrderPatch(BaseModel):
    """Only the line items of a Created order can be replaced."""
    model_config = ConfigDict(extra="forbid")

    items: list[LineItemRequest] = Field(min_length=1)

    @field_validator("items")
    @classmethod
    def check_items(cls, items: list[LineItemRequest]) -> list[LineItemRequest]:
        return _one_line_per_product(items)
