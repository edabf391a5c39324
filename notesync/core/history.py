from __future__ import annotations

import json
from pathlib import Path

from notesync.core.config import RUN_HISTORY_PATH
from notesync.sync.events import SyncObserver


class RunHistory:
    """Append-only JSONL log of finished sync passes."""

    def __init__(self, path: Path = RUN_HISTORY_PATH):
        self.path = path

    def append(self, summary: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(summary, ensure_ascii=False))
            f.write("\n")

    def read(self, limit: int = 50) -> list[dict]:
        """Return up to `limit` entries, newest first."""
        if limit <= 0 or not self.path.exists():
            return []

        lines = self.path.read_text(encoding="utf-8", errors="replace").splitlines()
        out: list[dict] = []
        for line in reversed(lines):
            if len(out) >= limit:
                break
            raw = line.strip()
            if not raw:
                continue
            try:
                payload = json.loads(raw)
            except ValueError:
                payload = {"raw": raw, "parse_error": True}
            if isinstance(payload, dict):
                out.append(payload)
        return out


class HistoryRecorder(SyncObserver):
    def __init__(self, history: RunHistory):
        self.history = history

    def on_pass_stopped(self, result) -> None:
        self.history.append(result.to_dict())
