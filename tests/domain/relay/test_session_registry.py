"""Tests for SessionRegistry atomic operations."""

import threading
from datetime import timedelta

from app.domain.relay.relay_models import LiveSession
from app.domain.relay.session_registry import SessionRegistry
from tests.fixtures.relay_fakes import T0, FakeHandle


def make_session(connection_id: str, *, identity: str = "10.0.0.1", target: str = "alice",
                 feed: FakeHandle | None = None, offset: int = 0) -> LiveSession:
    return LiveSession(
        connection_id=connection_id,
        identity=identity,
        target=target,
        feed=feed or FakeHandle(target),
        started_at=T0 + timedelta(seconds=offset),
    )


class TestPut:
    def test_put_and_get(self):
        registry = SessionRegistry()
        session = make_session("c1")

        assert registry.put("c1", session) is None
        assert registry.get("c1") is session
        assert "c1" in registry
        assert len(registry) == 1

    def test_put_replaces_and_closes_previous_feed(self):
        registry = SessionRegistry()
        first = make_session("c1", target="alice")
        second = make_session("c1", target="carol")

        registry.put("c1", first)
        replaced = registry.put("c1", second)

        assert replaced is first
        assert first.feed.close_calls == 1
        assert second.feed.close_calls == 0
        assert registry.get("c1") is second

    def test_racing_puts_leave_one_session(self):
        registry = SessionRegistry()
        sessions = [make_session("c1", target=f"t{i}") for i in range(16)]
        barrier = threading.Barrier(len(sessions))

        def worker(session):
            barrier.wait()
            registry.put("c1", session)

        threads = [threading.Thread(target=worker, args=(s,)) for s in sessions]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winner = registry.get("c1")
        assert len(registry) == 1
        assert winner.feed.close_calls == 0
        losers = [s for s in sessions if s is not winner]
        assert all(s.feed.close_calls == 1 for s in losers)


class TestRemove:
    def test_remove_returns_session_without_closing(self):
        registry = SessionRegistry()
        session = make_session("c1")
        registry.put("c1", session)

        assert registry.remove("c1") is session
        assert registry.remove("c1") is None
        assert session.feed.close_calls == 0
        assert len(registry) == 0

    def test_remove_missing_is_noop(self):
        assert SessionRegistry().remove("nope") is None

    def test_remove_checks_feed_ownership(self):
        registry = SessionRegistry()
        stale = FakeHandle("stale")
        current = make_session("c1")
        registry.put("c1", current)

        assert registry.remove("c1", feed=stale) is None
        assert registry.get("c1") is current
        assert registry.remove("c1", feed=current.feed) is current

    def test_racing_removes_hand_out_session_once(self):
        registry = SessionRegistry()
        registry.put("c1", make_session("c1"))
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(registry.remove("c1"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r is not None) == 1

    def test_remove_where(self):
        registry = SessionRegistry()
        registry.put("c1", make_session("c1", identity="10.0.0.1"))
        registry.put("c2", make_session("c2", identity="10.0.0.2"))
        registry.put("c3", make_session("c3", identity="10.0.0.1"))

        removed = registry.remove_where(lambda s: s.identity == "10.0.0.1")

        assert sorted(s.connection_id for s in removed) == ["c1", "c3"]
        assert len(registry) == 1
        assert "c2" in registry


class TestSnapshot:
    def test_snapshot_ordered_by_start_time(self):
        registry = SessionRegistry()
        registry.put("late", make_session("late", offset=30))
        registry.put("early", make_session("early", offset=0))
        registry.put("mid", make_session("mid", offset=10))

        assert [s.connection_id for s in registry.snapshot()] == ["early", "mid", "late"]

    def test_snapshot_is_a_copy(self):
        registry = SessionRegistry()
        registry.put("c1", make_session("c1"))

        snapshot = registry.snapshot()
        registry.remove("c1")

        assert len(snapshot) == 1
