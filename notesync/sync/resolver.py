"""Last-write-wins decisions for one record id seen on both sides.

A write only happens on a strict `updated` inequality, so equal timestamps
are treated as already reconciled and re-running a plan is a no-op.
"""

from __future__ import annotations

from typing import Iterable

from .records import Record


def remote_wins(local: Record | None, remote: Record) -> bool:
    return local is None or local.updated < remote.updated


def local_wins(local: Record, remote: Record | None) -> bool:
    return remote is None or remote.updated < local.updated


def _by_id(records: Iterable[Record]) -> dict[str, Record]:
    return {r.id: r for r in records}


def plan_remote_changes(remote: Iterable[Record], local: Iterable[Record]) -> list[Record]:
    """Remote records that must be written to the local store."""
    local_by_id = _by_id(local)
    return [r for r in remote if remote_wins(local_by_id.get(r.id), r)]


def plan_local_changes(local: Iterable[Record], remote: Iterable[Record]) -> list[Record]:
    """Local records that must be written to the cloud."""
    remote_by_id = _by_id(remote)
    return [r for r in local if local_wins(r, remote_by_id.get(r.id))]
