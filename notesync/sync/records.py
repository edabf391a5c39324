from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

# Synced strictly in this order, one collection at a time.
COLLECTION_NAMES: tuple[str, ...] = ("Notes", "Notebooks", "Tags", "Files")

STORE_NAMES: dict[str, str] = {
    "Notes": "notes",
    "Notebooks": "notebooks",
    "Tags": "tags",
    "Files": "files",
}


def store_name(collection: str) -> str:
    try:
        return STORE_NAMES[collection]
    except KeyError:
        raise ValueError(f"unknown_collection: {collection}") from None


class Record(BaseModel):
    """One synced item. Payload fields stay flat next to `id` and `updated`."""

    model_config = ConfigDict(extra="allow")

    id: str
    # Epoch milliseconds of the last edit.
    updated: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("updated", mode="before")
    @classmethod
    def _updated_as_int(cls, value):
        if value is None or value == "":
            return 0
        if isinstance(value, float):
            return int(value)
        return value

    def payload(self) -> dict[str, Any]:
        return self.model_dump()


def as_record(item: Record | dict[str, Any]) -> Record:
    if isinstance(item, Record):
        return item
    return Record.model_validate(item)


@dataclass
class CollectionSyncResult:
    collection: str
    pulled: int = 0
    pushed: int = 0


@dataclass
class PassResult:
    result: str
    profile_id: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    error: str | None = None
    collections: list[CollectionSyncResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.result == "success"

    @property
    def pulled(self) -> int:
        return sum(c.pulled for c in self.collections)

    @property
    def pushed(self) -> int:
        return sum(c.pushed for c in self.collections)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["pulled"] = self.pulled
        out["pushed"] = self.pushed
        return out
