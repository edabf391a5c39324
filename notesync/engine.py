from __future__ import annotations

from notesync.core.config import AppConfig
from notesync.providers import build_cloud_adapter
from notesync.providers.db import build_local_stores
from notesync.sync.events import SyncEvents, SyncObserver
from notesync.sync.scheduler import SyncScheduler


def build_scheduler(cfg: AppConfig, observers: list[SyncObserver] | None = None) -> SyncScheduler:
    cloud = build_cloud_adapter(cfg.cloud.backend, cfg.cloud)
    profile_id = cfg.sync.profile_id
    stores = build_local_stores(cfg.database.path, profile_id)
    return SyncScheduler(
        cloud=cloud,
        stores=stores,
        profile_provider=lambda: profile_id,
        events=SyncEvents(observers),
        concurrent_start=cfg.sync.concurrent_start,
    )
