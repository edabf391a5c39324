from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Mapping

from .collection import CollectionSyncer
from .errors import AuthenticationFailure
from .events import SyncEvents
from .records import COLLECTION_NAMES, PassResult

if TYPE_CHECKING:
    from notesync.providers.base import CloudAdapter, LocalStore

logger = logging.getLogger("sync.scheduler")

SETTLE_DELAY_SEC = 0.5
INTERVAL_MIN_MS = 2000
INTERVAL_MAX_MS = 15000
# Share of the interval range moved per pass.
SPEEDUP_FACTOR = 0.4
SLOWDOWN_FACTOR = 0.2


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncStat:
    interval: float = INTERVAL_MIN_MS
    interval_min: float = INTERVAL_MIN_MS
    interval_max: float = INTERVAL_MAX_MS
    had_remote_change: bool = False


def next_interval(stat: SyncStat) -> float:
    """Move `stat.interval` toward min after remote activity, toward max otherwise."""
    span = stat.interval_max - stat.interval_min
    if stat.had_remote_change:
        stat.interval -= span * SPEEDUP_FACTOR
    else:
        stat.interval += span * SLOWDOWN_FACTOR

    stat.interval = max(stat.interval_min, stat.interval)
    stat.interval = min(stat.interval_max, stat.interval)
    return stat.interval


class SyncScheduler:
    """Runs sync passes on an adaptive watchdog timer.

    All methods must be called from the event loop thread. At most one pass
    runs at a time; a `start()` that arrives mid-pass is queued or dropped
    depending on `concurrent_start`.
    """

    def __init__(
        self,
        cloud: CloudAdapter,
        stores: Mapping[str, LocalStore],
        profile_provider: Callable[[], str],
        events: SyncEvents | None = None,
        concurrent_start: str = "queue",
        collection_names: tuple[str, ...] = COLLECTION_NAMES,
        settle_delay_sec: float = SETTLE_DELAY_SEC,
        stat: SyncStat | None = None,
    ):
        if concurrent_start not in ("queue", "ignore"):
            raise ValueError(f"invalid_concurrent_start: {concurrent_start}")
        self.cloud = cloud
        self.events = events or SyncEvents()
        self.syncer = CollectionSyncer(cloud, stores, self.events)
        self.profile_provider = profile_provider
        self.concurrent_start = concurrent_start
        self.collection_names = tuple(collection_names)
        self.settle_delay_sec = settle_delay_sec
        self.stat = stat or SyncStat()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._start_requested = False
        self._disconnected = False
        self.pass_count = 0
        self.skipped_start_count = 0
        self.last_result: PassResult | None = None

    @property
    def state(self) -> str:
        if self._running:
            return "running"
        if self._timer is not None:
            return "pending"
        return "idle"

    @property
    def current_task(self) -> asyncio.Task | None:
        return self._task

    async def ensure_auth(self) -> None:
        try:
            authenticated = await self.cloud.check_auth()
        except Exception as e:
            raise AuthenticationFailure(f"cloud_auth_error: {e}") from e
        if not authenticated:
            raise AuthenticationFailure("authentication_failed")

    async def init(self) -> bool:
        """Check credentials and start syncing when they are accepted.

        A rejected login is only logged; nothing is scheduled until the
        caller invokes `init()` or `start()` again.
        """
        try:
            await self.ensure_auth()
        except AuthenticationFailure as e:
            logger.warning("%s", e)
            return False
        self.start()
        return True

    def start(self) -> None:
        self._disconnected = False
        if self._running:
            if self.concurrent_start == "queue":
                self._start_requested = True
                logger.info("sync_start_queued pass_in_progress")
            else:
                self.skipped_start_count += 1
                logger.info("sync_start_ignored pass_in_progress")
            return
        self._arm(self.settle_delay_sec)

    def start_watch(self) -> None:
        self._arm(self.compute_next_interval() / 1000.0)

    def stop_watch(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def disconnect(self):
        self.stop_watch()
        self._disconnected = True
        self._start_requested = False
        logger.info("sync_disconnected")

        disconnect = getattr(self.cloud, "disconnect", None)
        if callable(disconnect):
            return await disconnect()
        return None

    def compute_next_interval(self) -> float:
        interval = next_interval(self.stat)
        logger.info("next_check_in_ms=%s", int(interval))
        return interval

    def _arm(self, delay_sec: float) -> None:
        self.stop_watch()
        self._loop = asyncio.get_running_loop()
        self._timer = self._loop.call_later(delay_sec, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._task = asyncio.ensure_future(self.run_pass())

    async def _sync_all(self, result: PassResult) -> None:
        for name in self.collection_names:
            collection_result = await self.syncer.sync_collection(name, result.profile_id)
            result.collections.append(collection_result)
            if collection_result.pulled:
                self.stat.had_remote_change = True

    async def run_pass(self) -> PassResult | None:
        if self._running:
            logger.warning("sync_pass_skipped pass_in_progress")
            return None

        self._running = True
        self.stat.had_remote_change = False
        self.events.pass_started()
        result = PassResult(result="running", started_at=_now_iso())
        started = time.monotonic()
        try:
            result.profile_id = self.profile_provider()
            logger.info("sync_pass_started profile=%s", result.profile_id)
            await self._sync_all(result)
            result.result = "success"
        except Exception as e:
            logger.exception("sync_pass_failed: %s", e)
            result.result = "error"
            result.error = str(e)
            # A failed pass never speeds up polling.
            self.stat.had_remote_change = False
        finally:
            self._running = False

        result.finished_at = _now_iso()
        self.pass_count += 1
        self.last_result = result
        logger.info(
            "sync_pass_finished result=%s pulled=%s pushed=%s elapsed_ms=%s",
            result.result,
            result.pulled,
            result.pushed,
            int((time.monotonic() - started) * 1000),
        )
        self.events.pass_stopped(result)

        if self._disconnected:
            return result
        if self._start_requested:
            self._start_requested = False
            self.start()
        else:
            self.start_watch()
        return result

    def snapshot(self) -> dict[str, object]:
        next_run_in_sec = None
        if self._timer is not None and self._loop is not None:
            next_run_in_sec = round(max(self._timer.when() - self._loop.time(), 0.0), 3)
        return {
            "state": self.state,
            "interval_ms": int(self.stat.interval),
            "interval_min_ms": int(self.stat.interval_min),
            "interval_max_ms": int(self.stat.interval_max),
            "next_run_in_sec": next_run_in_sec,
            "pass_count": self.pass_count,
            "skipped_start_count": self.skipped_start_count,
            "start_queued": self._start_requested,
            "disconnected": self._disconnected,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

