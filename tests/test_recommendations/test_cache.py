"""Tests for the reader/writer lock and the two cache shapes."""

from __future__ import annotations

import threading
import time

from stock_recommender.recommendations.cache import KeyedCache, ReadWriteLock, TTLSlotCache


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLSlotCache:
    def test_empty_returns_none(self):
        assert TTLSlotCache(60).get() is None

    def test_put_then_get_within_ttl(self):
        clock = _FakeClock()
        cache = TTLSlotCache(60, clock=clock)
        cache.put(["a", "b"])
        clock.now += 59
        assert cache.get() == ["a", "b"]

    def test_expires_at_ttl(self):
        clock = _FakeClock()
        cache = TTLSlotCache(60, clock=clock)
        cache.put(["a"])
        clock.now += 60
        assert cache.get() is None

    def test_put_replaces_and_refreshes(self):
        clock = _FakeClock()
        cache = TTLSlotCache(60, clock=clock)
        cache.put(["old"])
        clock.now += 50
        cache.put(["new"])
        clock.now += 50
        assert cache.get() == ["new"]

    def test_invalidate(self):
        cache = TTLSlotCache(60)
        cache.put(["a"])
        cache.invalidate()
        assert cache.get() is None

    def test_put_after_invalidate_is_dropped(self):
        cache = TTLSlotCache(60)
        generation = cache.generation
        cache.invalidate()
        assert cache.put(["stale"], generation) is False
        assert cache.get() is None

    def test_put_with_current_generation_is_kept(self):
        cache = TTLSlotCache(60)
        cache.invalidate()
        assert cache.put(["fresh"], cache.generation) is True
        assert cache.get() == ["fresh"]


class TestKeyedCache:
    def test_get_missing(self):
        assert KeyedCache().get("AAPL") is None

    def test_put_get_and_len(self):
        cache = KeyedCache()
        cache.put("AAPL", [1])
        cache.put("MSFT", [2])
        assert cache.get("AAPL") == [1]
        assert len(cache) == 2

    def test_invalidate_clears_everything(self):
        cache = KeyedCache()
        cache.put("AAPL", [1])
        cache.invalidate()
        assert cache.get("AAPL") is None
        assert len(cache) == 0

    def test_put_after_invalidate_is_dropped(self):
        cache = KeyedCache()
        generation = cache.generation
        cache.invalidate()
        assert cache.put("AAPL", [1], generation) is False
        assert cache.get("AAPL") is None
        assert cache.put("AAPL", [2], cache.generation) is True
        assert cache.get("AAPL") == [2]


class TestReadWriteLock:
    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=2)

        def reader():
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=3)
        assert not any(t.is_alive() for t in threads)

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events: list[str] = []
        writer_in = threading.Event()

        def writer():
            with lock.write():
                writer_in.set()
                time.sleep(0.05)
                events.append("writer-done")

        def reader():
            writer_in.wait(timeout=2)
            with lock.read():
                events.append("reader")

        w = threading.Thread(target=writer)
        r = threading.Thread(target=reader)
        w.start()
        r.start()
        w.join(timeout=3)
        r.join(timeout=3)
        assert events == ["writer-done", "reader"]
