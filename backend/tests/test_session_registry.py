from __future__ import annotations

from memory_engine.memory.sessions import SessionDeduplicator, SessionRegistry
from memory_engine.memory.types import Memory


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_or_create_returns_same_state():
    registry = SessionRegistry()

    first = registry.get_or_create("s1", "p1")
    second = registry.get_or_create("s1", "p1")

    assert first is second
    assert "s1" in registry
    assert len(registry) == 1


def test_idle_sessions_expire_after_ttl():
    clock = FakeClock()
    registry = SessionRegistry(ttl_sec=60, clock=clock)
    registry.get_or_create("old", "p1")
    registry.add_injected("old", ["m1"])

    clock.now += 61
    registry.get_or_create("new", "p1")

    assert "old" not in registry
    assert registry.injected_ids("old") == frozenset()


def test_least_recently_used_session_is_evicted_at_capacity():
    registry = SessionRegistry(max_entries=2, clock=FakeClock())
    registry.get_or_create("a", "p1")
    registry.get_or_create("b", "p1")
    registry.get_or_create("a", "p1")

    registry.get_or_create("c", "p1")

    assert "a" in registry
    assert "b" not in registry
    assert "c" in registry


def test_add_injected_ignores_unknown_sessions():
    registry = SessionRegistry()

    registry.add_injected("missing", ["m1"])

    assert registry.injected_ids("missing") == frozenset()


def test_deduplicator_filters_recorded_ids_per_session():
    registry = SessionRegistry()
    registry.get_or_create("s1", "p1")
    registry.get_or_create("s2", "p1")
    dedup = SessionDeduplicator(registry)
    pool = [Memory(id="m1", content="a"), Memory(id="m2", content="b")]

    dedup.record("s1", ["m1"])

    assert [item.id for item in dedup.filter("s1", pool)] == ["m2"]
    assert [item.id for item in dedup.filter("s2", pool)] == ["m1", "m2"]
