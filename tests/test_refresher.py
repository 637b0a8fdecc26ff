"""
测试缓存刷新循环

覆盖：
- 单个 pool 失败不影响其它 pool
- 失败时保留最近一次成功的值
- 刷新中途收到退出信号
- 刷新期间其它 pool 的读取不被阻塞
"""

import asyncio

import pytest

from pool_volume.errors import StoreUnavailableError
from pool_volume.models import VolumeCache
from pool_volume.refresher import CacheRefresher, RefreshState
from pool_volume.shutdown import ShutdownCoordinator

from conftest import POOL_A, POOL_B, POOL_C


class ScriptedStore:
    """按脚本返回结果的假存储：每个 pool 一个结果队列，队列耗尽后重复最后一个"""

    def __init__(self, script, on_query=None):
        self.script = {pool: list(results) for pool, results in script.items()}
        self.on_query = on_query
        self.calls = []

    async def aggregate(self, pool_address, window_seconds=300):
        self.calls.append(pool_address)
        if self.on_query:
            self.on_query(pool_address)
        await asyncio.sleep(0)

        results = self.script[pool_address]
        result = results.pop(0) if len(results) > 1 else results[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_cache(pools, default=0.0):
    cache = VolumeCache()
    cache.initialize(pools, default=default)
    return cache


class TestRefreshTick:
    """单轮刷新"""

    @pytest.mark.asyncio
    async def test_tick_refreshes_all_pools(self, shutdown):
        store = ScriptedStore({POOL_A: [1.0], POOL_B: [2.0], POOL_C: [0.0]})
        cache = make_cache([POOL_A, POOL_B, POOL_C])
        refresher = CacheRefresher(store, cache, shutdown)

        assert await refresher.tick() == 3
        assert await cache.get(POOL_A) == 1.0
        assert await cache.get(POOL_B) == 2.0
        assert await cache.get(POOL_C) == 0.0
        assert refresher.state == RefreshState.IDLE
        assert refresher.ticks == 1
        assert refresher.last_tick_at is not None

    @pytest.mark.asyncio
    async def test_failure_is_isolated_per_pool(self, shutdown):
        """测试：中间的 pool 失败，其余 pool 照常刷新"""
        store = ScriptedStore({
            POOL_A: [1.0],
            POOL_B: [StoreUnavailableError("db down")],
            POOL_C: [3.0],
        })
        cache = make_cache([POOL_A, POOL_B, POOL_C], default=9.0)
        refresher = CacheRefresher(store, cache, shutdown)

        assert await refresher.tick() == 2
        assert await cache.get(POOL_A) == 1.0
        assert await cache.get(POOL_B) == 9.0
        assert await cache.get(POOL_C) == 3.0
        assert refresher.failures == 1

    @pytest.mark.asyncio
    async def test_unregistered_pool_is_isolated(self, shutdown):
        """测试：刷新列表中有未注册的 pool 时，其后的 pool 照常刷新"""
        store = ScriptedStore({POOL_A: [1.0], "unregistered": [4.0], POOL_C: [3.0]})
        cache = make_cache([POOL_A, POOL_C])
        refresher = CacheRefresher(store, cache, shutdown, pool_addresses=[POOL_A, "unregistered", POOL_C])

        assert await refresher.tick() == 2
        assert store.calls == [POOL_A, "unregistered", POOL_C]
        assert await cache.get(POOL_C) == 3.0
        assert await cache.get("unregistered") is None
        assert refresher.failures == 1

    @pytest.mark.asyncio
    async def test_last_successful_write_wins(self, shutdown):
        """测试：失败轮次保留最近一次成功的值"""
        down = StoreUnavailableError("db down")
        store = ScriptedStore({POOL_A: [5.0, down, down, 7.0]})
        cache = make_cache([POOL_A])
        refresher = CacheRefresher(store, cache, shutdown)

        await refresher.tick()
        assert await cache.get(POOL_A) == 5.0

        await refresher.tick()
        await refresher.tick()
        assert await cache.get(POOL_A) == 5.0

        await refresher.tick()
        assert await cache.get(POOL_A) == 7.0

    @pytest.mark.asyncio
    async def test_shutdown_mid_tick(self, shutdown):
        """测试：刷新第 3 个 pool 时收到退出信号，前 2 个已更新，其余保留旧值"""
        pools = [f"pool-{i}" for i in range(1, 6)]

        def _on_query(pool_address):
            if pool_address == "pool-3":
                shutdown.trigger("test")

        store = ScriptedStore({p: [float(i * 10)] for i, p in enumerate(pools, 1)}, on_query=_on_query)
        cache = make_cache(pools, default=1.0)
        refresher = CacheRefresher(store, cache, shutdown)

        assert await refresher.tick() == 2

        assert await cache.get("pool-1") == 10.0
        assert await cache.get("pool-2") == 20.0
        for pool in pools[2:]:
            assert await cache.get(pool) == 1.0
        # 第 3 个 pool 的查询已发出并完成，之后的 pool 不再查询
        assert store.calls == ["pool-1", "pool-2", "pool-3"]
        assert refresher.state == RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_real_database(self, db, shutdown):
        """测试：使用真实数据库刷新"""
        db.insert_transaction("s1", POOL_A, 4.0)
        db.insert_transaction("s2", POOL_A, 1.0)
        cache = make_cache([POOL_A, POOL_B])
        refresher = CacheRefresher(db, cache, shutdown)

        assert await refresher.tick() == 2
        assert await cache.get(POOL_A) == pytest.approx(5.0)
        assert await cache.get(POOL_B) == 0.0


class TestRefreshLoop:
    """刷新循环"""

    @pytest.mark.asyncio
    async def test_run_stops_on_shutdown(self, shutdown):
        store = ScriptedStore({POOL_A: [1.0]})
        cache = make_cache([POOL_A])
        refresher = CacheRefresher(store, cache, shutdown, interval=0.01)

        task = asyncio.create_task(refresher.run())
        await asyncio.sleep(0.05)
        shutdown.trigger("test")
        await asyncio.wait_for(task, timeout=1.0)

        assert refresher.ticks >= 1
        assert await cache.get(POOL_A) == 1.0

    @pytest.mark.asyncio
    async def test_run_wakes_from_long_interval(self, shutdown):
        """测试：等待下一轮期间收到退出信号立即返回"""
        store = ScriptedStore({POOL_A: [1.0]})
        cache = make_cache([POOL_A])
        refresher = CacheRefresher(store, cache, shutdown, interval=3600)

        task = asyncio.create_task(refresher.run())
        await asyncio.sleep(0.01)
        shutdown.trigger("test")
        await asyncio.wait_for(task, timeout=1.0)

        assert refresher.ticks == 1

    @pytest.mark.asyncio
    async def test_run_survives_store_outage(self):
        shutdown = ShutdownCoordinator()
        store = ScriptedStore({POOL_A: [StoreUnavailableError("db down")]})
        cache = make_cache([POOL_A], default=2.0)
        refresher = CacheRefresher(store, cache, shutdown, interval=0.005)

        task = asyncio.create_task(refresher.run())
        await asyncio.sleep(0.05)
        shutdown.trigger("test")
        await asyncio.wait_for(task, timeout=1.0)

        assert refresher.ticks > 1
        assert refresher.failures == refresher.ticks
        assert await cache.get(POOL_A) == 2.0


class TestReadDuringRefresh:
    """刷新期间的并发读取"""

    @pytest.mark.asyncio
    async def test_readers_not_blocked_by_inflight_refresh(self, shutdown):
        """测试：pool A 查询挂起时，并发读取 pool B 立即返回旧值"""
        release = asyncio.Event()
        started = asyncio.Event()

        class BlockingStore:
            async def aggregate(self, pool_address, window_seconds=300):
                if pool_address == POOL_A:
                    started.set()
                    await release.wait()
                    return 50.0
                return 60.0

        cache = make_cache([POOL_A, POOL_B], default=1.0)
        refresher = CacheRefresher(BlockingStore(), cache, shutdown, pool_addresses=[POOL_A, POOL_B])

        tick = asyncio.create_task(refresher.tick())
        await started.wait()
        assert refresher.state == RefreshState.QUERYING
        assert refresher.current_pool == POOL_A

        values = await asyncio.wait_for(
            asyncio.gather(*[cache.get(POOL_B) for _ in range(50)]),
            timeout=0.5,
        )
        assert values == [1.0] * 50
        assert await cache.get(POOL_A) == 1.0

        release.set()
        assert await tick == 2
        assert await cache.get(POOL_A) == 50.0
        assert await cache.get(POOL_B) == 60.0
