"""
Test Semantic Cache
===================

TTL visibility, relevance admission, value-based eviction and pure reads.
"""

import asyncio

from mediator.semantic_cache import SemanticCache
from tests.conftest import FakeClock


def test_set_get_and_access_bookkeeping():
    """get() bumps access_count and last_accessed, never expires_at."""
    print("\n🧪 Test: access bookkeeping")
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=60, clock=clock)

    assert cache.set("a", {"x": 1}, semantic_relevance=0.9)
    before = cache.peek("a")

    clock.advance(5)
    assert cache.get("a") == {"x": 1}
    after = cache.peek("a")

    assert after.access_count == before.access_count + 1
    assert after.last_accessed == clock.now
    assert after.expires_at == before.expires_at
    print("✅ Bookkeeping updated on get only")


def test_has_and_peek_are_pure():
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=60, clock=clock)
    cache.set("a", "value")

    for _ in range(3):
        assert cache.has("a")
        cache.peek("a")
        cache.items()

    entry = cache.peek("a")
    assert entry.access_count == 0
    assert cache.get_stats()["hits"] == 0


def test_expired_entries_invisible_until_swept():
    """Expired entries are not returned, and the sweeper removes them."""
    print("\n🧪 Test: TTL expiry")
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=30, clock=clock)
    cache.set("short", 1, ttl=10)
    cache.set("long", 2)

    clock.advance(15)
    assert cache.get("short") is None
    assert not cache.has("short")
    assert cache.get("long") == 2
    assert cache.keys() == ["long"]

    assert cache.sweep_expired() == 1
    assert len(cache) == 1
    print("✅ Expired entry hidden then swept")


def test_rejects_low_relevance():
    cache = SemanticCache(max_entries=10, min_semantic_relevance=0.5)

    assert cache.set("low", 1, semantic_relevance=0.2) is False
    assert not cache.has("low")
    assert cache.get_stats()["rejections"] == 1

    # Out-of-range relevance is clamped before the check
    assert cache.set("high", 1, semantic_relevance=3.0)
    assert cache.peek("high").semantic_relevance == 1.0


def test_eviction_never_exceeds_capacity():
    print("\n🧪 Test: capacity bound")
    clock = FakeClock()
    cache = SemanticCache(max_entries=5, default_ttl=600, clock=clock)

    for i in range(20):
        clock.advance(1)
        cache.set(f"k{i}", i, semantic_relevance=0.8)
        assert len(cache) <= 5

    stats = cache.get_stats()
    assert stats["size"] == 5
    assert stats["evictions"] == 15
    print(f"✅ Size stayed at {stats['size']} after 20 inserts")


def test_eviction_spares_most_recent_and_most_used():
    """With equal relevance the hot entry survives and a cold one goes."""
    clock = FakeClock()
    cache = SemanticCache(max_entries=3, default_ttl=600, clock=clock)

    for key in ("cold", "warm", "hot"):
        cache.set(key, key, semantic_relevance=0.7)

    clock.advance(10)
    cache.get("warm")
    for _ in range(5):
        clock.advance(1)
        cache.get("hot")

    cache.set("new", "new", semantic_relevance=0.7)

    assert cache.has("hot")
    assert cache.has("warm")
    assert not cache.has("cold")
    assert cache.has("new")


def test_full_cache_purges_expired_before_evicting():
    clock = FakeClock()
    cache = SemanticCache(max_entries=2, default_ttl=600, clock=clock)
    cache.set("stale", 1, ttl=5)
    cache.set("fresh", 2)
    cache.get("fresh")

    clock.advance(10)
    cache.set("another", 3)

    stats = cache.get_stats()
    assert stats["expired"] == 1
    assert stats["evictions"] == 0
    assert sorted(cache.keys()) == ["another", "fresh"]


def test_update_keeps_expiry_and_delete_is_atomic():
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=60, clock=clock)
    cache.set("a", 1)
    expires = cache.peek("a").expires_at

    clock.advance(5)
    assert cache.update("a", 2)
    assert cache.peek("a").expires_at == expires
    assert cache.get("a") == 2

    assert cache.delete("a")
    assert not cache.delete("a")
    assert cache.update("a", 3) is False


async def test_sweeper_runs_in_background():
    print("\n🧪 Test: background sweeper")
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=1, sweep_interval=0.01, clock=clock)
    cache.set("a", 1)
    clock.advance(5)

    cache.start_sweeper()
    await asyncio.sleep(0.05)
    await cache.stop_sweeper()

    assert len(cache) == 0
    print("✅ Sweeper removed expired entry")


def test_len_and_size_count_only_live_entries():
    """Expired entries still awaiting a sweep are not counted."""
    print("\n🧪 Test: live size before sweep")
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=60, clock=clock)
    cache.set("short", 1, ttl=5)
    cache.set("long", 2)

    clock.advance(10)

    assert len(cache) == 1
    assert cache.get_stats()["size"] == 1
    assert cache.get_stats()["expired"] == 0

    assert cache.sweep_expired() == 1
    assert len(cache) == 1
    print("✅ Size excludes the unswept entry")


def test_no_default_ttl_keeps_entries_visible():
    clock = FakeClock()
    cache = SemanticCache(max_entries=10, default_ttl=None, clock=clock)
    cache.set("path", {"steps": []})

    clock.advance(10 * 24 * 3600)

    assert cache.peek("path").expires_at is None
    assert cache.get("path") == {"steps": []}
    assert cache.sweep_expired() == 0

    cache.set("bounded", 1, ttl=30)
    clock.advance(31)
    assert cache.keys() == ["path"]
