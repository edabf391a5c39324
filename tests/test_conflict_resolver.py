from fakes import rec

from notesync.sync.resolver import local_wins, plan_local_changes, plan_remote_changes, remote_wins


def test_remote_wins_when_local_missing_or_older():
    remote = rec("a", 200)
    assert remote_wins(None, remote) is True
    assert remote_wins(rec("a", 100), remote) is True
    assert remote_wins(rec("a", 300), remote) is False


def test_local_wins_when_remote_missing_or_older():
    local = rec("a", 200)
    assert local_wins(local, None) is True
    assert local_wins(local, rec("a", 100)) is True
    assert local_wins(local, rec("a", 300)) is False


def test_equal_timestamps_never_write():
    local = rec("a", 150, title="local")
    remote = rec("a", 150, title="remote")
    assert remote_wins(local, remote) is False
    assert local_wins(local, remote) is False


def test_plans_are_directional_and_disjoint():
    local = [rec("older", 1), rec("newer", 9), rec("same", 5), rec("only_local", 3)]
    remote = [rec("older", 2), rec("newer", 8), rec("same", 5), rec("only_remote", 4)]

    pulled = [r.id for r in plan_remote_changes(remote, local)]
    pushed = [r.id for r in plan_local_changes(local, remote)]

    assert pulled == ["older", "only_remote"]
    assert pushed == ["newer", "only_local"]
    assert not set(pulled) & set(pushed)


def test_plans_are_empty_once_reconciled():
    synced = [rec("a", 10), rec("b", 20)]
    mirror = [rec("a", 10), rec("b", 20)]

    for _ in range(2):
        assert plan_remote_changes(mirror, synced) == []
        assert plan_local_changes(synced, mirror) == []


def test_plan_keeps_remote_payload():
    remote = [rec("a", 7, title="from cloud", tags=["x"])]
    [picked] = plan_remote_changes(remote, [rec("a", 1, title="stale")])
    assert picked.payload() == {"id": "a", "updated": 7, "title": "from cloud", "tags": ["x"]}
