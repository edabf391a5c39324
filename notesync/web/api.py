from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException

from notesync.core.config import load_config
from notesync.core.history import HistoryRecorder, RunHistory
from notesync.engine import build_scheduler
from notesync.sync.scheduler import SyncScheduler

logger = logging.getLogger("web.api")

router = APIRouter(prefix="/api")

_scheduler: SyncScheduler | None = None
_history = RunHistory()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_scheduler() -> SyncScheduler | None:
    return _scheduler


async def start_engine() -> SyncScheduler | None:
    global _scheduler
    if _scheduler is not None:
        return _scheduler

    cfg = load_config()
    try:
        _scheduler = build_scheduler(cfg, observers=[HistoryRecorder(_history)])
    except ValueError as e:
        logger.error("engine_build_failed: %s", e)
        return None

    if cfg.sync.autostart:
        started = await _scheduler.init()
        logger.info("engine_started autostart=%s authenticated=%s", cfg.sync.autostart, started)
    return _scheduler


async def stop_engine() -> None:
    global _scheduler
    if _scheduler is None:
        return
    try:
        await _scheduler.disconnect()
    except Exception:
        logger.exception("engine_stop_error")

    task = _scheduler.current_task
    if task is not None and not task.done():
        logger.info("engine_stop_waiting_for_pass")
        try:
            await task
        except Exception:
            logger.exception("engine_stop_pass_error")
    _scheduler = None


def _require_scheduler() -> SyncScheduler:
    scheduler = get_scheduler()
    if scheduler is None:
        raise HTTPException(status_code=503, detail="sync_engine_not_running")
    return scheduler


@router.get("/healthz")
def healthz():
    return {
        "ok": True,
        "status": "alive",
        "checked_at": _now_iso(),
    }


@router.get("/status/sync")
def sync_status():
    scheduler = get_scheduler()
    if scheduler is None:
        return {"ok": True, "checked_at": _now_iso(), "engine_running": False}
    return {
        "ok": True,
        "checked_at": _now_iso(),
        "engine_running": True,
        **scheduler.snapshot(),
    }


@router.get("/history")
def get_history(limit: int = 50):
    limit = min(max(int(limit), 1), 500)
    items = _history.read(limit=limit)
    return {"ok": True, "count": len(items), "items": items}


@router.post("/actions/sync-now")
async def sync_now():
    """Arm the settle timer for an immediate pass."""
    scheduler = _require_scheduler()
    scheduler.start()
    return {"ok": True, "state": scheduler.state, "start_queued": scheduler.snapshot()["start_queued"]}


@router.post("/actions/disconnect")
async def disconnect():
    scheduler = _require_scheduler()
    try:
        await scheduler.disconnect()
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"disconnect_failed: {e}")
    return {"ok": True, "state": scheduler.state}
