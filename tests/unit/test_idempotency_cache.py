from __future__ import annotations

from fieldsight_agent.delivery.idempotency import IdempotencyCache
from fieldsight_agent.delivery.results import completed_result


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_stored_result() -> None:
    cache = IdempotencyCache(clock=_Clock())
    result = completed_result("done", "ticket_1")
    cache.put("k-1", result)

    assert cache.get("k-1") == result
    assert cache.get("k-2") is None


def test_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache = IdempotencyCache(ttl_sec=60, clock=clock)
    cache.put("k-1", completed_result("done"))

    clock.now = 60
    assert cache.get("k-1") is not None
    clock.now = 60.5
    assert cache.get("k-1") is None
    assert len(cache) == 0


def test_oldest_entry_is_evicted_past_max_entries() -> None:
    cache = IdempotencyCache(max_entries=2, clock=_Clock())
    cache.put("a", completed_result("a"))
    cache.put("b", completed_result("b"))
    # чтение не продлевает жизнь записи (FIFO, не LRU)
    assert cache.get("a") is not None
    cache.put("c", completed_result("c"))

    assert cache.get("a") is None
    assert cache.get("b") is not None
    assert cache.get("c") is not None
    assert len(cache) == 2


def test_prune_runs_before_write() -> None:
    clock = _Clock()
    cache = IdempotencyCache(ttl_sec=10, max_entries=2, clock=clock)
    cache.put("old-1", completed_result("1"))
    cache.put("old-2", completed_result("2"))

    clock.now = 11
    cache.put("fresh", completed_result("3"))

    assert "old-1" not in cache
    assert "old-2" not in cache
    assert cache.get("fresh") is not None


def test_overwrite_moves_key_to_newest_position() -> None:
    cache = IdempotencyCache(max_entries=2, clock=_Clock())
    cache.put("a", completed_result("a-1"))
    cache.put("b", completed_result("b"))
    cache.put("a", completed_result("a-2"))
    cache.put("c", completed_result("c"))

    assert cache.get("b") is None
    assert cache.get("a") == completed_result("a-2")
    assert cache.get("c") is not None
