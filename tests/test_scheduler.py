import asyncio

import pytest
from fakes import DisconnectableCloud, FakeCloud, GatedStore, RecordingObserver, make_stores, rec

from notesync.sync.events import SyncEvents, SyncObserver
from notesync.sync.scheduler import SyncScheduler, SyncStat, next_interval

SETTLE = 0.01


def _scheduler(cloud=None, stores=None, observer=None, **kwargs) -> SyncScheduler:
    return SyncScheduler(
        cloud=cloud or FakeCloud(),
        stores=stores or make_stores(),
        profile_provider=lambda: "notes-db",
        events=SyncEvents([observer] if observer else None),
        settle_delay_sec=SETTLE,
        **kwargs,
    )


async def _until(predicate, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


def test_next_interval_examples():
    idle = SyncStat(interval=2000, interval_min=2000, interval_max=15000)
    assert next_interval(idle) == 4600

    busy = SyncStat(interval=2000, interval_min=2000, interval_max=15000, had_remote_change=True)
    assert next_interval(busy) == 2000


def test_next_interval_stays_in_bounds():
    stat = SyncStat()
    seen = []
    for _ in range(10):
        seen.append(next_interval(stat))
    assert seen[-1] == 15000
    assert seen[:5] == [4600, 7200, 9800, 12400, 15000]

    stat.had_remote_change = True
    seen = [next_interval(stat) for _ in range(5)]
    assert seen == [9800, 4600, 2000, 2000, 2000]
    assert all(2000 <= v <= 15000 for v in seen)


def test_initial_stat():
    scheduler = _scheduler()
    assert (scheduler.stat.interval, scheduler.stat.interval_min, scheduler.stat.interval_max) == (2000, 2000, 15000)
    assert scheduler.state == "idle"


def test_pass_syncs_collections_in_order_and_reschedules():
    cloud = FakeCloud()
    observer = RecordingObserver()
    scheduler = _scheduler(cloud=cloud, observer=observer)

    async def _run():
        result = await scheduler.run_pass()
        return result, scheduler.state

    result, state = asyncio.run(_run())

    assert result.result == "success"
    assert cloud.find_calls == ["notes", "notebooks", "tags", "files"]
    assert [c.collection for c in result.collections] == ["Notes", "Notebooks", "Tags", "Files"]
    assert state == "pending"
    assert scheduler.stat.interval == 4600
    assert observer.events == [("started",), ("stopped", "success", None)]


def test_remote_change_speeds_up_polling():
    cloud = FakeCloud({"tags": [rec("t1", 5)]})
    scheduler = _scheduler(cloud=cloud, stat=SyncStat(interval=15000))

    result = asyncio.run(scheduler.run_pass())

    assert result.pulled == 1
    assert scheduler.stat.had_remote_change is True
    assert scheduler.stat.interval == 9800


def test_had_remote_change_resets_each_pass():
    cloud = FakeCloud({"notes": [rec("n1", 5)]})
    scheduler = _scheduler(cloud=cloud)

    async def _run():
        await scheduler.run_pass()
        first = scheduler.stat.had_remote_change
        await scheduler.run_pass()
        return first, scheduler.stat.had_remote_change

    first, second = asyncio.run(_run())

    assert first is True
    assert second is False


def test_write_failure_aborts_pass_and_still_reschedules():
    stores = make_stores(Notes=[rec("local", 900)])
    stores["Notes"].fail_ids = {"remote"}
    cloud = FakeCloud({"notes": [rec("remote", 10)]})
    observer = RecordingObserver()
    scheduler = _scheduler(cloud=cloud, stores=stores, observer=observer)

    async def _run():
        result = await scheduler.run_pass()
        return result, scheduler.state

    result, state = asyncio.run(_run())

    assert result.result == "error"
    assert "write_failed" in result.error
    # Push for Notes never ran and later collections were not touched.
    assert cloud.saved == []
    assert cloud.find_calls == ["notes"]
    assert state == "pending"
    assert scheduler.stat.interval == 4600
    assert observer.events[-1][:2] == ("stopped", "error")


def test_failed_pass_leaves_no_write_behind():
    stores = make_stores()
    stores["Notes"].fail_ids = {"bad"}
    stores["Notes"].write_delays = {"slow": 0.05}
    cloud = FakeCloud({"notes": [rec("bad", 10), rec("slow", 10)]})
    observer = RecordingObserver()
    scheduler = _scheduler(cloud=cloud, stores=stores, observer=observer)

    async def _run():
        result = await scheduler.run_pass()
        scheduler.stop_watch()
        await asyncio.sleep(0.1)
        return result

    result = asyncio.run(_run())

    assert result.result == "error"
    assert observer.events[0] == ("started",)
    assert ("applied", "Notes", "slow") in observer.events
    assert observer.events[-1][:2] == ("stopped", "error")


def test_failed_pass_after_pull_counts_as_idle():
    cloud = FakeCloud({"notes": [rec("n", 1)]})
    cloud.fail_find = {"tags"}
    scheduler = _scheduler(cloud=cloud, stat=SyncStat(interval=9800))

    result = asyncio.run(scheduler.run_pass())

    assert result.result == "error"
    assert scheduler.stat.interval == 12400


def test_start_fires_pass_after_settle_delay():
    cloud = FakeCloud()
    scheduler = _scheduler(cloud=cloud)

    async def _run():
        scheduler.start()
        assert scheduler.state == "pending"
        await _until(lambda: scheduler.pass_count == 1)
        await scheduler.current_task
        state = scheduler.state
        await scheduler.disconnect()
        return state

    state = asyncio.run(_run())

    assert state == "pending"
    assert len(cloud.find_calls) == 4


def test_start_replaces_pending_timer():
    scheduler = _scheduler()

    async def _run():
        scheduler.start()
        first = scheduler._timer
        scheduler.start()
        cancelled = first.cancelled()
        await _until(lambda: scheduler.pass_count >= 1)
        await scheduler.current_task
        await asyncio.sleep(SETTLE * 3)
        count = scheduler.pass_count
        scheduler.stop_watch()
        return cancelled, count

    cancelled, count = asyncio.run(_run())

    assert cancelled is True
    assert count == 1


def test_stop_watch_without_timer_is_noop():
    scheduler = _scheduler()
    scheduler.stop_watch()
    assert scheduler.state == "idle"


def test_disconnect_while_pending_prevents_pass():
    cloud = DisconnectableCloud()
    scheduler = _scheduler(cloud=cloud)

    async def _run():
        scheduler.start()
        out = await scheduler.disconnect()
        await asyncio.sleep(SETTLE * 5)
        return out

    out = asyncio.run(_run())

    assert out == "disconnected"
    assert cloud.disconnect_calls == 1
    assert scheduler.pass_count == 0
    assert scheduler.state == "idle"
    assert cloud.find_calls == []


def test_disconnect_without_capability_returns_none():
    scheduler = _scheduler(cloud=FakeCloud())
    assert asyncio.run(scheduler.disconnect()) is None


def test_disconnect_during_pass_stops_rescheduling():
    stores = make_stores()
    stores["Notes"] = GatedStore()
    scheduler = _scheduler(stores=stores)

    async def _run():
        task = asyncio.ensure_future(scheduler.run_pass())
        await _until(lambda: scheduler.state == "running")
        await scheduler.disconnect()
        stores["Notes"].gate.set()
        result = await task
        return result, scheduler.state

    result, state = asyncio.run(_run())

    assert result.result == "success"
    assert state == "idle"


def test_disconnect_keeps_stat():
    scheduler = _scheduler(stat=SyncStat(interval=7200))
    asyncio.run(scheduler.disconnect())
    assert scheduler.stat.interval == 7200


def test_concurrent_start_is_queued():
    stores = make_stores()
    stores["Notes"] = GatedStore()
    scheduler = _scheduler(stores=stores, concurrent_start="queue")

    async def _run():
        task = asyncio.ensure_future(scheduler.run_pass())
        await _until(lambda: scheduler.state == "running")
        scheduler.start()
        queued = scheduler.snapshot()["start_queued"]
        stores["Notes"].gate.set()
        await task
        next_in = scheduler.snapshot()["next_run_in_sec"]
        await _until(lambda: scheduler.pass_count == 2)
        await scheduler.current_task
        scheduler.stop_watch()
        return queued, next_in

    queued, next_in = asyncio.run(_run())

    assert queued is True
    # Re-armed with the settle delay, not the watchdog interval.
    assert next_in is not None and next_in <= SETTLE
    assert scheduler.pass_count == 2


def test_concurrent_start_is_ignored():
    stores = make_stores()
    stores["Notes"] = GatedStore()
    scheduler = _scheduler(stores=stores, concurrent_start="ignore")

    async def _run():
        task = asyncio.ensure_future(scheduler.run_pass())
        await _until(lambda: scheduler.state == "running")
        scheduler.start()
        stores["Notes"].gate.set()
        await task
        snap = scheduler.snapshot()
        scheduler.stop_watch()
        return snap

    snap = asyncio.run(_run())

    assert snap["skipped_start_count"] == 1
    assert snap["start_queued"] is False
    assert snap["interval_ms"] == 4600
    assert snap["next_run_in_sec"] > SETTLE


def test_overlapping_run_pass_is_refused():
    stores = make_stores()
    stores["Notes"] = GatedStore()
    scheduler = _scheduler(stores=stores)

    async def _run():
        task = asyncio.ensure_future(scheduler.run_pass())
        await _until(lambda: scheduler.state == "running")
        second = await scheduler.run_pass()
        stores["Notes"].gate.set()
        await task
        scheduler.stop_watch()
        return second

    assert asyncio.run(_run()) is None
    assert scheduler.pass_count == 1


@pytest.mark.parametrize("authenticated", [False, RuntimeError("network_down")])
def test_init_does_not_start_without_auth(authenticated):
    scheduler = _scheduler(cloud=FakeCloud(authenticated=authenticated))

    assert asyncio.run(scheduler.init()) is False
    assert scheduler.state == "idle"


def test_init_starts_when_authenticated():
    scheduler = _scheduler()

    async def _run():
        ok = await scheduler.init()
        state = scheduler.state
        scheduler.stop_watch()
        return ok, state

    assert asyncio.run(_run()) == (True, "pending")


def test_invalid_concurrent_start_policy():
    with pytest.raises(ValueError):
        _scheduler(concurrent_start="parallel")


def test_broken_observer_does_not_abort_pass():
    class Broken(SyncObserver):
        def on_pass_started(self) -> None:
            raise RuntimeError("observer_bug")

    observer = RecordingObserver()
    scheduler = SyncScheduler(
        cloud=FakeCloud(),
        stores=make_stores(),
        profile_provider=lambda: "notes-db",
        events=SyncEvents([Broken(), observer]),
    )

    result = asyncio.run(scheduler.run_pass())

    assert result.result == "success"
    assert observer.events[0] == ("started",)
