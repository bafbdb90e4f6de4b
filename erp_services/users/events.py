"""
Users Service — event definitions

Events are named in the past tense and never change once stored.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class UserCreated(BaseModel):
    user_id: UUID
    name: str
    contact: dict
    addresses: list[dict]
    timestamp: datetime


class UserUpdated(BaseModel):
    """Only the changed fields are carried in ``changes``."""
    user_id: UUID
    changes: dict
    timestamp: datetime


class UserDeleted(BaseModel):
    user_id: UUID
    timestamp: datetime
