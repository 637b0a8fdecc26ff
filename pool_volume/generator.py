"""
模拟交易生成循环

每 interval 秒为指定 pool 生成一笔随机金额的交易并写入数据库，
每 report_interval 秒汇报一次写入数量。
"""

import asyncio
import logging
import random
from typing import Optional

from .database import Database
from .errors import StoreUnavailableError
from .shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)


class TransactionGenerator:
    """模拟交易生成器"""

    def __init__(
        self,
        db: Database,
        shutdown: ShutdownCoordinator,
        pool_address: str,
        interval: float = 0.02,
        min_amount: float = 0.1,
        max_amount: float = 10.0,
        report_interval: float = 1.0,
        rng: Optional[random.Random] = None
    ):
        if not 0 <= min_amount <= max_amount:
            raise ValueError(f"invalid amount range: [{min_amount}, {max_amount}]")

        self.db = db
        self.shutdown = shutdown
        self.pool_address = pool_address
        self.interval = interval
        self.min_amount = min_amount
        self.max_amount = max_amount
        self.report_interval = report_interval
        self.rng = rng or random.Random()

        self.total_inserted = 0

    def make_transaction(self):
        """生成 (signature, amount)"""
        signature = f"tx_{self.rng.getrandbits(64)}"
        amount = self.rng.uniform(self.min_amount, self.max_amount)
        return signature, amount

    async def step(self) -> bool:
        """生成并写入一笔交易"""
        signature, amount = self.make_transaction()
        inserted = await self.db.record(signature, self.pool_address, amount)
        if inserted:
            self.total_inserted += 1
        logger.debug(f"Inserted simulated transaction: signature={signature}, amount={amount:.2f}")
        return inserted

    async def run(self):
        """运行生成循环，直到收到退出信号"""
        logger.info(f"Starting transaction generator (pool={self.pool_address}, interval={self.interval}s)")
        loop = asyncio.get_running_loop()

        count = 0
        last_report = loop.time()

        while not self.shutdown.is_cancelled:
            started = loop.time()
            try:
                if await self.step():
                    count += 1
            except StoreUnavailableError as e:
                logger.warning(f"Failed to insert transaction: {e}")

            now = loop.time()
            if now - last_report >= self.report_interval:
                logger.info(f"Inserted {count} transactions in the last {now - last_report:.2f} seconds")
                count = 0
                last_report = now

            if await self.shutdown.sleep(max(self.interval - (now - started), 0.0)):
                break

        logger.info("Transaction generator is shutting down...")
