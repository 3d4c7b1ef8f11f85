# tests/test_cache_layer.py

import asyncio

import pytest

from tracker.cache.decorators import async_cached
from tracker.cache.layer import PROJECTS, TASKS, USERS
from tracker.schemas import UserSummary


@pytest.mark.asyncio
async def test_loader_result_is_cached(cache) -> None:
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        return {"id": 1}

    assert await cache.get(TASKS, 1, loader) == {"id": 1}
    assert await cache.get(TASKS, 1, loader) == {"id": 1}
    assert calls == 1
    assert cache.stats["l1_hits"] == 1
    assert cache.stats["misses"] == 1


@pytest.mark.asyncio
async def test_none_is_never_cached(cache) -> None:
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        return None

    assert await cache.get(TASKS, 5, loader) is None
    assert await cache.get(TASKS, 5, loader) is None
    assert calls == 2


@pytest.mark.asyncio
async def test_concurrent_misses_load_once(cache) -> None:
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "value"

    results = await asyncio.gather(*(cache.get(PROJECTS, 7, loader) for _ in range(5)))
    assert results == ["value"] * 5
    assert calls == 1


@pytest.mark.asyncio
async def test_evict_forces_reload(cache) -> None:
    await cache.put(TASKS, 3, "old")
    await cache.evict(TASKS, 3)

    async def loader():
        return "fresh"

    assert await cache.get(TASKS, 3, loader) == "fresh"


@pytest.mark.asyncio
async def test_evict_all_only_touches_its_namespace(cache) -> None:
    await cache.put(TASKS, 1, "t1")
    await cache.put(TASKS, 2, "t2")
    await cache.put(PROJECTS, 1, "p1")

    await cache.evict_all(TASKS)

    assert await cache.get(TASKS, 1) is None
    assert await cache.get(TASKS, 2) is None
    assert await cache.get(PROJECTS, 1) == "p1"


@pytest.mark.asyncio
async def test_load_racing_a_put_does_not_overwrite_it(cache) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_loader():
        started.set()
        await release.wait()
        return "stale"

    reader = asyncio.create_task(cache.get(TASKS, 9, slow_loader))
    await started.wait()
    await cache.put(TASKS, 9, "written")
    release.set()

    assert await reader == "stale"
    assert await cache.get(TASKS, 9) == "written"
    assert cache.stats["stale_skips"] == 1


@pytest.mark.asyncio
async def test_load_racing_an_evict_all_is_not_stored(cache) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_loader():
        started.set()
        await release.wait()
        return "stale"

    reader = asyncio.create_task(cache.get(PROJECTS, "user:a@x.io", slow_loader))
    await started.wait()
    await cache.evict_all(PROJECTS)
    release.set()

    await reader
    assert await cache.get(PROJECTS, "user:a@x.io") is None


@pytest.mark.asyncio
async def test_unknown_namespace_is_rejected(cache) -> None:
    with pytest.raises(ValueError):
        await cache.get("comments", 1)


@pytest.mark.asyncio
async def test_clear_all_and_stats(cache) -> None:
    await cache.put(USERS, "a@x.io", {"id": 1})
    await cache.put(TASKS, 1, {"id": 1})

    stats = cache.get_stats()
    assert stats["namespaces"] == {"users": 1, "projects": 0, "tasks": 1}
    assert stats["l2_enabled"] is False

    await cache.clear_all()
    assert cache.get_stats()["l1_size"] == 0


class _Users:
    def __init__(self, cache) -> None:
        self.cache = cache
        self.loads = 0

    @async_cached(USERS, lambda email: email, model=UserSummary)
    async def load(self, email: str) -> UserSummary | None:
        self.loads += 1
        if email == "missing@x.io":
            return None
        return UserSummary(id=1, email=email, full_name="Ann")


@pytest.mark.asyncio
async def test_decorator_rehydrates_models(cache) -> None:
    users = _Users(cache)

    first = await users.load("ann@x.io")
    second = await users.load("ann@x.io")

    assert isinstance(second, UserSummary)
    assert first == second
    assert users.loads == 1
    assert await users.load("missing@x.io") is None
