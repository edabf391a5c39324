from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Mapping

from .errors import FetchFailure, WriteFailure
from .events import SyncEvents
from .records import CollectionSyncResult, Record, as_record, store_name
from .resolver import plan_local_changes, plan_remote_changes

if TYPE_CHECKING:
    from notesync.providers.base import CloudAdapter, LocalStore

logger = logging.getLogger("sync.collection")


async def _settle_all(writes) -> None:
    """Await every write, then raise the first failure."""
    results = await asyncio.gather(*writes, return_exceptions=True)
    for item in results:
        if isinstance(item, BaseException):
            raise item


def unwrap_listing(listing: Any) -> list[Record]:
    """Local stores may hand back a plain list or a paged container.

    Paged containers expose the unpaged set as `full_collection`; others keep
    their items under `records`.
    """
    if listing is None:
        return []
    full = getattr(listing, "full_collection", None)
    if full is not None:
        listing = full
    elif isinstance(listing, Mapping) and "records" in listing:
        listing = listing["records"]
    elif hasattr(listing, "records"):
        listing = listing.records
    return [as_record(item) for item in listing]


class CollectionSyncer:
    """Bidirectional reconciliation of one collection, stateless across calls."""

    def __init__(self, cloud: CloudAdapter, stores: Mapping[str, LocalStore], events: SyncEvents | None = None):
        self.cloud = cloud
        self.stores = stores
        self.events = events or SyncEvents()

    def _store(self, name: str) -> LocalStore:
        store = self.stores.get(name)
        if store is None:
            raise FetchFailure(name, "local", LookupError("no_local_store"))
        return store

    async def _fetch_local(self, name: str) -> list[Record]:
        try:
            return unwrap_listing(await self._store(name).find())
        except FetchFailure:
            raise
        except Exception as e:
            raise FetchFailure(name, "local", e) from e

    async def _fetch_remote(self, name: str, profile_id: str) -> list[Record]:
        try:
            files = await self.cloud.find(type=store_name(name), profile_id=profile_id)
            return [as_record(item) for item in files or []]
        except Exception as e:
            raise FetchFailure(name, "remote", e) from e

    async def _apply_remote(self, name: str, record: Record, profile_id: str) -> None:
        await self._store(name).save_model_object(data=record, profile_id=profile_id)
        self.events.record_applied(name, record)

    async def sync_remote_changes(self, name: str, files: list[Record], local: list[Record], profile_id: str) -> int:
        """Save remote changes locally; returns the number of records written."""
        changes = plan_remote_changes(files, local)
        if not changes:
            return 0
        try:
            await _settle_all(self._apply_remote(name, r, profile_id) for r in changes)
        except Exception as e:
            raise WriteFailure(name, "remote_to_local", e) from e
        logger.info("remote_changes_applied collection=%s count=%s", name, len(changes))
        return len(changes)

    async def sync_local_changes(self, name: str, local: list[Record], files: list[Record], profile_id: str) -> int:
        """Push local changes to the cloud; returns the number of records written."""
        changes = plan_local_changes(local, files)
        if not changes:
            return 0
        remote_type = store_name(name)
        try:
            await _settle_all(self.cloud.save_model(record=r, profile_id=profile_id, type=remote_type) for r in changes)
        except Exception as e:
            raise WriteFailure(name, "local_to_remote", e) from e
        logger.info("local_changes_pushed collection=%s count=%s", name, len(changes))
        return len(changes)

    async def sync_collection(self, name: str, profile_id: str) -> CollectionSyncResult:
        local = await self._fetch_local(name)
        files = await self._fetch_remote(name, profile_id)
        logger.debug("collection_fetched collection=%s local=%s remote=%s", name, len(local), len(files))

        result = CollectionSyncResult(collection=name)
        result.pulled = await self.sync_remote_changes(name, files, local, profile_id)
        if result.pulled:
            # Local state moved under us; push decisions must see it.
            local = await self._fetch_local(name)
        result.pushed = await self.sync_local_changes(name, local, files, profile_id)
        return result
