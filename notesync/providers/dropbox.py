from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import unquote

import requests

from notesync.core.config import DropboxConfig
from notesync.sync.records import Record, as_record

logger = logging.getLogger("providers.dropbox")

API = "https://api.dropboxapi.com/2"
CONTENT = "https://content.dropboxapi.com/2"


def file_name(record_id: str) -> str:
    """Flat `<id>.json` name; separators are percent-escaped so ids never nest."""
    if not record_id:
        raise RuntimeError("dropbox_invalid_record_id")
    return record_id.replace("%", "%25").replace("/", "%2F").replace("\\", "%5C") + ".json"


class DropboxAdapter:
    """Dropbox backend: records are `<root>/<profile_id>/<type>/<id>.json` files."""

    def __init__(self, cfg: DropboxConfig):
        self.access_token = cfg.access_token or ""
        root = (cfg.root_path or "").strip("/")
        self.root_path = f"/{root}" if root else ""
        self.timeout = int(cfg.timeout_sec)

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        if not self.access_token:
            raise RuntimeError("dropbox_token_missing")
        headers = {"Authorization": f"Bearer {self.access_token}"}
        headers.update(extra or {})
        return headers

    def _folder(self, type: str, profile_id: str) -> str:
        return f"{self.root_path}/{profile_id}/{type}"

    def _rpc(self, endpoint: str, payload: dict[str, Any] | None) -> requests.Response:
        return requests.post(
            f"{API}/{endpoint}",
            headers=self._headers({"Content-Type": "application/json"}) if payload is not None else self._headers(),
            data=json.dumps(payload) if payload is not None else None,
            timeout=self.timeout,
        )

    def _check_data(self, res: requests.Response, action: str) -> dict[str, Any]:
        if res.status_code != 200:
            raise RuntimeError(f"dropbox_{action}_failed_status_{res.status_code}: {res.text[:200]}")
        payload = res.json()
        if not isinstance(payload, dict):
            raise RuntimeError(f"dropbox_{action}_invalid_response")
        return payload

    def _check_auth_sync(self) -> bool:
        if not self.access_token:
            return False
        res = self._rpc("users/get_current_account", None)
        if res.status_code == 401:
            return False
        self._check_data(res, "auth_check")
        return True

    def _list_entries(self, folder: str) -> list[dict[str, Any]]:
        res = self._rpc("files/list_folder", {"path": folder, "recursive": False})
        # 409 with path/not_found: nothing has been synced to this folder yet.
        if res.status_code == 409 and "not_found" in res.text:
            return []
        page = self._check_data(res, "list_folder")
        entries = list(page.get("entries") or [])
        while page.get("has_more"):
            res = self._rpc("files/list_folder/continue", {"cursor": page.get("cursor")})
            page = self._check_data(res, "list_folder_continue")
            entries.extend(page.get("entries") or [])
        return entries

    def _download(self, path: str) -> dict[str, Any]:
        res = requests.post(
            f"{CONTENT}/files/download",
            headers=self._headers({"Dropbox-API-Arg": json.dumps({"path": path})}),
            timeout=self.timeout,
        )
        if res.status_code != 200:
            raise RuntimeError(f"dropbox_download_failed_status_{res.status_code}: {path}")
        payload = json.loads(res.content.decode("utf-8"))
        if not isinstance(payload, dict):
            raise RuntimeError(f"dropbox_invalid_document: {path}")
        return payload

    def _find_sync(self, type: str, profile_id: str) -> list[Record]:
        records: list[Record] = []
        for entry in self._list_entries(self._folder(type, profile_id)):
            name = entry.get("name") or ""
            if entry.get(".tag") != "file" or not name.endswith(".json"):
                continue
            doc = self._download(entry.get("path_lower") or entry.get("path_display"))
            doc.setdefault("id", unquote(name[: -len(".json")]))
            records.append(as_record(doc))
        return records

    def _save_model_sync(self, record: Record, profile_id: str, type: str) -> None:
        arg = {
            "path": f"{self._folder(type, profile_id)}/{file_name(record.id)}",
            "mode": "overwrite",
            "mute": True,
        }
        res = requests.post(
            f"{CONTENT}/files/upload",
            headers=self._headers(
                {
                    "Content-Type": "application/octet-stream",
                    "Dropbox-API-Arg": json.dumps(arg),
                }
            ),
            data=json.dumps(record.payload(), ensure_ascii=False).encode("utf-8"),
            timeout=self.timeout,
        )
        self._check_data(res, "upload")

    async def check_auth(self) -> bool:
        return await asyncio.to_thread(self._check_auth_sync)

    async def find(self, type: str, profile_id: str) -> list[Record]:
        return await asyncio.to_thread(self._find_sync, type, profile_id)

    async def save_model(self, record: Record, profile_id: str, type: str) -> None:
        await asyncio.to_thread(self._save_model_sync, as_record(record), profile_id, type)
