from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from notesync.sync.records import Record


@runtime_checkable
class CloudAdapter(Protocol):
    """Remote side of a sync. `disconnect()` is optional and looked up at runtime."""

    async def check_auth(self) -> bool: ...

    async def find(self, type: str, profile_id: str) -> list[Record]: ...

    async def save_model(self, record: Record, profile_id: str, type: str) -> None: ...


@runtime_checkable
class LocalStore(Protocol):
    """Local side of a sync, one instance per collection."""

    store_name: str

    async def find(self) -> Any: ...

    async def save_model_object(self, data: Record, profile_id: str) -> None: ...
