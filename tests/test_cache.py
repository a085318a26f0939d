import pytest

from swapdesk import cache as cache_module
from swapdesk.cache import TTLCache


@pytest.mark.asyncio
async def test_expired_entry_dropped(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(cache_module.time, "time", lambda: now[0])
    cache = TTLCache(default_ttl=10)

    await cache.set("sol", "SOL")
    assert await cache.get("sol") == "SOL"

    now[0] += 10
    assert await cache.get("sol") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_least_recently_used_evicted():
    cache = TTLCache(max_size=2)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.set("c", 3)

    assert await cache.get("b") is None
    assert [key for key, _ in await cache.items()] == ["a", "c"]


def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        TTLCache(max_size=0)
