from __future__ import annotations

import logging

logger = logging.getLogger("sync.events")


class SyncObserver:
    """Receives engine lifecycle signals. Override only what you need."""

    def on_pass_started(self) -> None:
        pass

    def on_pass_stopped(self, result) -> None:
        pass

    def on_record_applied(self, collection: str, record) -> None:
        pass


class SyncEvents:
    def __init__(self, observers: list[SyncObserver] | None = None):
        self._observers: list[SyncObserver] = list(observers or [])

    def subscribe(self, observer: SyncObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: SyncObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _emit(self, method: str, *args) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, method)(*args)
            except Exception:
                # A broken observer must not abort a pass.
                logger.exception("observer_failed event=%s observer=%s", method, type(observer).__name__)

    def pass_started(self) -> None:
        self._emit("on_pass_started")

    def pass_stopped(self, result) -> None:
        self._emit("on_pass_stopped", result)

    def record_applied(self, collection: str, record) -> None:
        self._emit("on_record_applied", collection, record)
