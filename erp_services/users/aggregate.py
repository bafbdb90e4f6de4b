"""
Users Service — user aggregate

State is rebuilt by replaying events; nothing but events is authoritative.
"""

from uuid import UUID


class UserAggregate:
    def __init__(self) -> None:
        self.id: UUID | None = None
        self.name: str = ""
        self.contact: dict = {}
        self.addresses: list[dict] = []
        self.created_at: str | None = None
        self.updated_at: str | None = None
        self.deleted: bool = False
        self.version: int = 0

    @property
    def exists(self) -> bool:
        return self.id is not None and not self.deleted

    def apply_user_created(self, data: dict) -> None:
        self.id = UUID(data["user_id"])
        self.name = data["name"]
        self.contact = data["contact"]
        self.addresses = data["addresses"]
        self.created_at = self.updated_at = data["timestamp"]

    def apply_user_updated(self, data: dict) -> None:
        for key, value in data["changes"].items():
            setattr(self, key, value)
        self.updated_at = data["timestamp"]

    def apply_user_deleted(self, data: dict) -> None:
        self.deleted = True
        self.updated_at = data["timestamp"]

    def apply_event(self, event_type: str, event_data: dict) -> None:
        handler = {
            "UserCreated": self.apply_user_created,
            "UserUpdated": self.apply_user_updated,
            "UserDeleted": self.apply_user_deleted,
        }.get(event_type)
        if handler:
            handler(event_data)

    @classmethod
    def from_events(cls, events: list[dict]) -> "UserAggregate":
        agg = cls()
        for e in events:
            agg.apply_event(e["event_type"], e["event_data"])
            agg.version = e["version"]
        return agg

    def to_document(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "contact": self.contact,
            "addresses": self.addresses,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
