from __future__ import annotations

from typing import Any, Dict, Iterator, List, Tuple

import pytest

from oomwatch.core.errors import ResourceVersionExpired, WatchError
from oomwatch.core.models import WatchNotification
from oomwatch.pipeline.workload_index import WorkloadIndex
from oomwatch.watch.resumable import ResumableWatch, WatchCursor, randomized_timeout


class _Stop(Exception):
    """Ends an otherwise endless watch loop in tests."""


class _FakeProvider:
    """
    Scripted list/watch provider.

    `lists` is consumed one entry per list call. `watches` is consumed one entry per
    watch call; each entry is a list of notifications and/or exceptions (an exception
    is raised when reached). When either script runs out, _Stop is raised.
    """

    def __init__(self, lists: List[Tuple[List[Dict[str, Any]], str]], watches: List[List[Any]]) -> None:
        self.lists = list(lists)
        self.watches = list(watches)
        self.list_calls: List[str] = []
        self.watch_calls: List[Tuple[str, str, int]] = []

    def list_resources(self, kind: str) -> Tuple[List[Dict[str, Any]], str]:
        self.list_calls.append(kind)
        if not self.lists:
            raise _Stop("no more lists")
        entry = self.lists.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return entry

    def watch_resources(self, kind: str, resource_version: str, timeout_seconds: int) -> Iterator[WatchNotification]:
        self.watch_calls.append((kind, resource_version, timeout_seconds))
        if not self.watches:
            raise _Stop("no more watches")
        script = self.watches.pop(0)

        def _gen() -> Iterator[WatchNotification]:
            for step in script:
                if isinstance(step, Exception):
                    raise step
                yield step

        return _gen()


class _RecordingHandler:
    def __init__(self) -> None:
        self.snapshots: List[List[Dict[str, Any]]] = []
        self.notifications: List[WatchNotification] = []

    def on_snapshot(self, items: List[Dict[str, Any]]) -> None:
        self.snapshots.append(list(items))

    def on_notification(self, notification: WatchNotification) -> None:
        self.notifications.append(notification)


def _n(type_: str, rv: str, obj: Dict[str, Any] | None = None) -> WatchNotification:
    return WatchNotification(type=type_, resource_version=rv, object=obj or {"metadata": {"resourceVersion": rv}})


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def test_randomized_timeout_is_within_base_and_twice_base() -> None:
    assert randomized_timeout(300, _FixedRandom(0.0)) == 300
    assert randomized_timeout(300, _FixedRandom(0.5)) == 450
    assert randomized_timeout(300, _FixedRandom(0.9999)) == 599
    for _ in range(50):
        assert 300 <= randomized_timeout(300) < 600


def test_cursor_advances_and_resets() -> None:
    c = WatchCursor()
    c.reset("10")
    c.advance("11")
    c.advance("")  # notifications without a resourceVersion keep the cursor
    assert (c.resource_version, c.position, c.resyncs) == ("11", 2, 1)
    c.reset("50")
    assert (c.resource_version, c.position, c.resyncs) == ("50", 0, 2)


def test_watch_resumes_from_last_notification() -> None:
    provider = _FakeProvider(
        lists=[([{"id": 1}], "10")],
        watches=[
            [_n("ADDED", "11"), _n("DELETED", "12")],
            [_n("ADDED", "13")],
        ],
    )
    handler = _RecordingHandler()
    w = ResumableWatch("pods", provider, handler, base_timeout_seconds=300, rng=_FixedRandom(0.0))

    with pytest.raises(_Stop):
        w.run()

    assert handler.snapshots == [[{"id": 1}]]
    assert [n.resource_version for n in handler.notifications] == ["11", "12", "13"]
    # Each reopen uses the last seen resourceVersion and the randomized timeout.
    assert provider.watch_calls == [("pods", "10", 300), ("pods", "12", 300), ("pods", "13", 300)]
    assert provider.list_calls == ["pods"]
    assert w.cursor.position == 3


def test_expired_cursor_triggers_full_relist() -> None:
    provider = _FakeProvider(
        lists=[([{"id": 1}], "10"), ([{"id": 2}], "100")],
        watches=[
            [_n("ADDED", "11"), ResourceVersionExpired("Expired: too old resource version: 11")],
            [_n("ADDED", "101")],
        ],
    )
    handler = _RecordingHandler()
    w = ResumableWatch("events", provider, handler, rng=_FixedRandom(0.0))

    with pytest.raises(_Stop):
        w.run()

    assert provider.list_calls == ["events", "events"]
    assert handler.snapshots == [[{"id": 1}], [{"id": 2}]]
    assert provider.watch_calls[1][1] == "100"
    assert [n.resource_version for n in handler.notifications] == ["11", "101"]
    assert w.cursor.resyncs == 2


def test_expiry_resync_rebuilds_workload_index(make_pod) -> None:
    provider = _FakeProvider(
        lists=[
            ([make_pod("u1", "web-1", "prod")], "10"),
            ([make_pod("u2", "web-2", "prod"), make_pod("u3", "db-0", "data")], "200"),
        ],
        watches=[
            [
                _n("ADDED", "11", make_pod("u4", "worker-0", "batch", "11")),
                ResourceVersionExpired("Expired"),
            ],
            [_n("DELETED", "201", make_pod("u3", "db-0", "data", "201"))],
        ],
    )
    index = WorkloadIndex()
    w = ResumableWatch("pods", provider, index)

    with pytest.raises(_Stop):
        w.run()

    # State from before the resync (u1, u4) is discarded.
    assert set(index.snapshot()) == {"u2"}
    assert index.ready is True


def test_non_expiry_watch_error_is_fatal() -> None:
    provider = _FakeProvider(
        lists=[([], "10"), ([], "20")],
        watches=[[WatchError("Watch error 500 InternalError: boom", code=500, reason="InternalError")]],
    )
    w = ResumableWatch("pods", provider, _RecordingHandler())

    with pytest.raises(WatchError):
        w.run()
    assert provider.list_calls == ["pods"]


def test_snapshot_failure_is_fatal() -> None:
    provider = _FakeProvider(lists=[RuntimeError("connection refused")], watches=[])  # type: ignore[list-item]
    w = ResumableWatch("pods", provider, _RecordingHandler())

    with pytest.raises(RuntimeError, match="connection refused"):
        w.run()
    assert provider.watch_calls == []
