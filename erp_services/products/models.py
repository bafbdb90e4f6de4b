"""
Products Service — field schemas
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: str = ""
    price: float = Field(ge=0)
    stock: int = Field(0, ge=0)


class ProductPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    description: str | None = None
    price: float | None = Field(None, ge=0)
    stock: int | None = Field(None, ge=0)


class ReserveRequest(BaseModel):
    """``reservation_id`` names one payment attempt; retries reuse it."""
    model_config = ConfigDict(extra="forbid")

    order_id: UUID
    reservation_id: UUID
    quantity: int = Field(gt=0)


class ReleaseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_id: UUID
    reservation_id: UUID
