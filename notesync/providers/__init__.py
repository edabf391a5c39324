from __future__ import annotations

from notesync.core.config import BACKEND_ALIASES, CloudConfig

from .base import CloudAdapter, LocalStore
from .dropbox import DropboxAdapter
from .remotestorage import RemoteStorageAdapter

__all__ = [
    "CloudAdapter",
    "DropboxAdapter",
    "LocalStore",
    "RemoteStorageAdapter",
    "build_cloud_adapter",
]


def build_cloud_adapter(backend: str, cfg: CloudConfig):
    name = (backend or "").strip().lower()
    name = BACKEND_ALIASES.get(name, name)
    if name == "remotestorage":
        return RemoteStorageAdapter(cfg.remotestorage)
    if name == "dropbox":
        return DropboxAdapter(cfg.dropbox)
    raise ValueError(f"invalid_sync_backend: {backend}")
