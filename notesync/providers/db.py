from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path

from notesync.sync.records import COLLECTION_NAMES, Record, as_record, store_name


def get_conn(db_path: str):
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str):
    conn = get_conn(db_path)
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS records (
          profile_id TEXT NOT NULL,
          store_name TEXT NOT NULL,
          id TEXT NOT NULL,
          updated INTEGER DEFAULT 0,
          payload_json TEXT,
          saved_at DATETIME DEFAULT CURRENT_TIMESTAMP,
          PRIMARY KEY (profile_id, store_name, id)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_records_store ON records(profile_id, store_name)")

    conn.commit()
    conn.close()


class SqliteLocalStore:
    """Local records of one collection for one profile."""

    def __init__(self, db_path: str, collection: str, profile_id: str):
        self.db_path = db_path
        self.collection = collection
        self.store_name = store_name(collection)
        self.profile_id = profile_id

    def _find_sync(self) -> list[Record]:
        conn = get_conn(self.db_path)
        try:
            rows = conn.execute(
                "SELECT payload_json FROM records WHERE profile_id=? AND store_name=? ORDER BY id",
                (self.profile_id, self.store_name),
            ).fetchall()
        finally:
            conn.close()
        return [as_record(json.loads(row["payload_json"])) for row in rows]

    def _save_sync(self, data: Record, profile_id: str) -> None:
        # find() only ever reads the bound profile.
        if profile_id != self.profile_id:
            raise ValueError(f"profile_mismatch: store={self.profile_id} write={profile_id}")
        conn = get_conn(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO records(profile_id,store_name,id,updated,payload_json)
                VALUES (?,?,?,?,?)
                ON CONFLICT(profile_id,store_name,id) DO UPDATE SET
                  updated=excluded.updated,
                  payload_json=excluded.payload_json,
                  saved_at=CURRENT_TIMESTAMP
                """,
                (
                    profile_id,
                    self.store_name,
                    data.id,
                    data.updated,
                    json.dumps(data.payload(), ensure_ascii=False),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    async def find(self) -> list[Record]:
        return await asyncio.to_thread(self._find_sync)

    async def save_model_object(self, data: Record | dict, profile_id: str) -> None:
        await asyncio.to_thread(self._save_sync, as_record(data), profile_id)


def build_local_stores(db_path: str, profile_id: str) -> dict[str, SqliteLocalStore]:
    init_db(db_path)
    return {name: SqliteLocalStore(db_path, name, profile_id) for name in COLLECTION_NAMES}


def count_records(db_path: str, profile_id: str) -> dict[str, int]:
    conn = get_conn(db_path)
    try:
        rows = conn.execute(
            "SELECT store_name, COUNT(*) AS n FROM records WHERE profile_id=? GROUP BY store_name",
            (profile_id,),
        ).fetchall()
    finally:
        conn.close()
    counts = {store_name(name): 0 for name in COLLECTION_NAMES}
    counts.update({row["store_name"]: int(row["n"]) for row in rows})
    return counts
