from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

BACKEND_ALIASES = {
    "remote-storage": "remotestorage",
    "remote_storage": "remotestorage",
    "dropbox-like": "dropbox",
}


class RemoteStorageConfig(BaseModel):
    # Storage root announced by WebFinger, e.g. https://host/storage/alice
    storage_url: str = ""
    token: str = ""
    module: str = "notes"
    timeout_sec: int = 30


class DropboxConfig(BaseModel):
    access_token: str = ""
    root_path: str = "/notesync"
    timeout_sec: int = 30


class CloudConfig(BaseModel):
    backend: Literal["remotestorage", "dropbox"] = "remotestorage"
    remotestorage: RemoteStorageConfig = Field(default_factory=RemoteStorageConfig)
    dropbox: DropboxConfig = Field(default_factory=DropboxConfig)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value):
        if isinstance(value, str):
            raw = value.strip().lower()
            return BACKEND_ALIASES.get(raw, raw)
        return value


class SyncConfig(BaseModel):
    profile_id: str = "notes-db"
    # What start() does while a pass is already running:
    # - queue: remember the request and start again once the pass finishes
    # - ignore: drop the request
    concurrent_start: Literal["queue", "ignore"] = "queue"
    # Check auth and start the watchdog when the service boots.
    autostart: bool = True


DATA_DIR = Path(os.environ.get("NOTESYNC_HOME", "~/.notesync")).expanduser()
DEFAULT_CONFIG_PATH = DATA_DIR / "config.yaml"
DEFAULT_CONFIG_TEMPLATE_PATH = Path(__file__).resolve().parents[2] / "config.yaml.example"
RUN_HISTORY_PATH = DATA_DIR / "run_history.jsonl"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = str(DATA_DIR / "notesync.log")


class DatabaseConfig(BaseModel):
    path: str = str(DATA_DIR / "notesync.db")


class AppConfig(BaseModel):
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    web_bind_host: str = "127.0.0.1"
    web_port: int = 8766


def ensure_runtime_dirs(cfg: AppConfig):
    Path(cfg.logging.file).parent.mkdir(parents=True, exist_ok=True)
    Path(cfg.database.path).parent.mkdir(parents=True, exist_ok=True)


def _dump_yaml(cfg: AppConfig) -> str:
    import yaml

    return yaml.safe_dump(cfg.model_dump(), allow_unicode=True, sort_keys=False)


def _template_config() -> tuple[AppConfig, str] | None:
    """Parse the shipped example config; None when missing or unusable."""
    import yaml

    if not DEFAULT_CONFIG_TEMPLATE_PATH.exists():
        return None
    text = DEFAULT_CONFIG_TEMPLATE_PATH.read_text(encoding="utf-8")
    try:
        return AppConfig.model_validate(yaml.safe_load(text) or {}), text
    except (yaml.YAMLError, ValueError):
        return None


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    import yaml

    if path.exists():
        cfg = AppConfig.model_validate(yaml.safe_load(path.read_text(encoding="utf-8")) or {})
    else:
        # First run: seed the file from the example, else from defaults.
        seeded = _template_config()
        cfg, text = seeded if seeded is not None else (AppConfig(), None)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text if text is not None else _dump_yaml(cfg), encoding="utf-8")
    ensure_runtime_dirs(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path = DEFAULT_CONFIG_PATH):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_dump_yaml(cfg), encoding="utf-8")
