from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import quote

import requests

from notesync.core.config import RemoteStorageConfig
from notesync.sync.records import Record, as_record

logger = logging.getLogger("providers.remotestorage")

FOLDER_CONTENT_TYPE = "application/ld+json"


class RemoteStorageAdapter:
    """remoteStorage backend: one JSON document per record.

    Layout: <storage_url>/<module>/<profile_id>/<type>/<id>
    """

    def __init__(self, cfg: RemoteStorageConfig):
        self.storage_url = (cfg.storage_url or "").rstrip("/")
        self.token = cfg.token or ""
        self.module = (cfg.module or "notes").strip("/")
        self.timeout = int(cfg.timeout_sec)

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        if not self.token:
            raise RuntimeError("remotestorage_not_connected")
        headers = {"Authorization": f"Bearer {self.token}"}
        headers.update(extra or {})
        return headers

    def _url(self, *parts: str, folder: bool = False) -> str:
        if not self.storage_url:
            raise RuntimeError("remotestorage_url_missing")
        path = "/".join(quote(p, safe="") for p in (self.module, *parts) if p)
        return f"{self.storage_url}/{path}" + ("/" if folder else "")

    def _check_auth_sync(self) -> bool:
        if not self.token or not self.storage_url:
            return False
        res = requests.get(self._url(folder=True), headers=self._headers(), timeout=self.timeout)
        if res.status_code in (401, 403):
            return False
        # An empty module answers 404 and is still reachable with this token.
        if res.status_code == 404 or 200 <= res.status_code < 300:
            return True
        raise RuntimeError(f"remotestorage_auth_check_failed_status_{res.status_code}")

    def _list_folder(self, url: str) -> dict[str, Any]:
        res = requests.get(url, headers=self._headers({"Accept": FOLDER_CONTENT_TYPE}), timeout=self.timeout)
        if res.status_code == 404:
            return {}
        if res.status_code != 200:
            raise RuntimeError(f"remotestorage_list_failed_status_{res.status_code}")
        payload = res.json()
        items = payload.get("items") if isinstance(payload, dict) else None
        return items if isinstance(items, dict) else {}

    def _get_document(self, url: str) -> dict[str, Any] | None:
        res = requests.get(url, headers=self._headers(), timeout=self.timeout)
        if res.status_code == 404:
            # Deleted between listing and fetch.
            return None
        if res.status_code != 200:
            raise RuntimeError(f"remotestorage_get_failed_status_{res.status_code}")
        payload = res.json()
        if not isinstance(payload, dict):
            raise RuntimeError("remotestorage_invalid_document")
        return payload

    def _find_sync(self, type: str, profile_id: str) -> list[Record]:
        items = self._list_folder(self._url(profile_id, type, folder=True))
        records: list[Record] = []
        for name in sorted(items):
            if name.endswith("/"):
                continue
            doc = self._get_document(self._url(profile_id, type, name))
            if doc is None:
                continue
            doc.setdefault("id", name)
            records.append(as_record(doc))
        return records

    def _save_model_sync(self, record: Record, profile_id: str, type: str) -> None:
        res = requests.put(
            self._url(profile_id, type, record.id),
            data=json.dumps(record.payload(), ensure_ascii=False).encode("utf-8"),
            headers=self._headers({"Content-Type": "application/json; charset=UTF-8"}),
            timeout=self.timeout,
        )
        if res.status_code not in (200, 201, 204):
            raise RuntimeError(f"remotestorage_put_failed_status_{res.status_code}")

    async def check_auth(self) -> bool:
        return await asyncio.to_thread(self._check_auth_sync)

    async def find(self, type: str, profile_id: str) -> list[Record]:
        return await asyncio.to_thread(self._find_sync, type, profile_id)

    async def save_model(self, record: Record, profile_id: str, type: str) -> None:
        await asyncio.to_thread(self._save_model_sync, as_record(record), profile_id, type)

    async def disconnect(self) -> None:
        self.token = ""
        logger.info("remotestorage_disconnected")

