"""
缓存刷新循环

每 refresh_interval 秒对所有注册的 pool 重新聚合成交量并写入缓存。
单个 pool 查询失败只记录日志，保留旧值，不影响同一轮的其它 pool。
"""

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from .database import Database, DEFAULT_WINDOW_SECONDS
from .errors import StoreUnavailableError, VolumeNotFoundError
from .models import VolumeCache
from .shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    TICKING = "ticking"
    QUERYING = "querying"
    PUBLISHING = "publishing"


class CacheRefresher:
    """周期刷新缓存"""

    def __init__(
        self,
        db: Database,
        cache: VolumeCache,
        shutdown: ShutdownCoordinator,
        pool_addresses: Optional[Sequence[str]] = None,
        interval: float = 30.0,
        window_seconds: int = DEFAULT_WINDOW_SECONDS
    ):
        self.db = db
        self.cache = cache
        self.shutdown = shutdown
        self.pool_addresses = list(pool_addresses) if pool_addresses is not None else cache.pool_addresses
        self.interval = interval
        self.window_seconds = window_seconds

        self.state = RefreshState.IDLE
        self.current_pool: Optional[str] = None
        self.last_tick_at: Optional[datetime] = None
        self.ticks = 0
        self.failures = 0

    async def refresh_pool(self, pool_address: str) -> bool:
        """
        刷新单个 pool

        Returns:
            是否写入了新值
        """
        self.current_pool = pool_address
        self.state = RefreshState.QUERYING
        try:
            volume = await self.db.aggregate(pool_address, self.window_seconds)
        except StoreUnavailableError as e:
            self.failures += 1
            logger.error(f"Failed to update cache for pool {pool_address}: {e}")
            return False

        # 查询期间收到退出信号：丢弃结果
        if self.shutdown.is_cancelled:
            logger.info(f"Discarding refresh result for pool {pool_address}: shutdown in progress")
            return False

        self.state = RefreshState.PUBLISHING
        try:
            await self.cache.set(pool_address, volume)
        except VolumeNotFoundError:
            self.failures += 1
            logger.error(f"Failed to update cache for pool {pool_address}: pool is not registered")
            return False
        logger.info(f"Updated cache for pool {pool_address}: {volume}")
        return True

    async def tick(self) -> int:
        """
        执行一轮刷新

        Returns:
            成功刷新的 pool 数量
        """
        self.state = RefreshState.TICKING
        refreshed = 0
        try:
            for pool_address in self.pool_addresses:
                if self.shutdown.is_cancelled:
                    logger.info("Refresh tick interrupted by shutdown")
                    break
                if await self.refresh_pool(pool_address):
                    refreshed += 1
        finally:
            self.state = RefreshState.IDLE
            self.current_pool = None
            self.ticks += 1
            self.last_tick_at = datetime.now(timezone.utc)

        logger.debug(f"Refresh tick done: {refreshed}/{len(self.pool_addresses)} pools")
        return refreshed

    async def run(self):
        """
        运行刷新循环

        启动后立即刷新一次，之后按固定周期刷新，直到收到退出信号。
        """
        logger.info(
            f"Starting cache refresher (interval={self.interval}s, "
            f"window={self.window_seconds}s, pools={len(self.pool_addresses)})"
        )
        loop = asyncio.get_running_loop()

        while not self.shutdown.is_cancelled:
            started = loop.time()
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Refresher loop error: {e}", exc_info=True)

            elapsed = loop.time() - started
            if await self.shutdown.sleep(max(self.interval - elapsed, 0.0)):
                break

        logger.info("Cache refresher stopped")
