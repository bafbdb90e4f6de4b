"""
Users Service — field schemas

A user owns its profile: name, contact details and postal addresses.
"""

from pydantic import BaseModel, ConfigDict, Field


class Address(BaseModel):
    model_config = ConfigDict(extra="forbid")

    line1: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = ""
    country: str = Field(min_length=2)


class Contact(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(None, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str | None = None


class UserFields(BaseModel):
    """Fields accepted by create."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    contact: Contact = Field(default_factory=Contact)
    addresses: list[Address] = Field(default_factory=list)


class UserPatch(BaseModel):
    """Fields accepted by update; omitted fields are left as they are."""
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    contact: Contact | None = None
    addresses: list[Address] | None = None
