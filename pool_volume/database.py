"""
数据库操作抽象层

封装所有 SQLite 操作：交易写入（按 signature 幂等）和滑动窗口成交量聚合。
同步方法在调用线程执行；异步包装通过 asyncio.to_thread 放到工作线程，
避免阻塞事件循环。
"""

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .config import get_config
from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 300

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS transactions (
    signature TEXT PRIMARY KEY,
    pool_address TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount >= 0),
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_pool_ts ON transactions(pool_address, timestamp);
"""


def format_ts(dt: datetime) -> str:
    """统一时间格式（UTC，微秒精度，可按字符串比较）"""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """数据库操作类"""

    def __init__(self, db_path: Optional[str] = None, timeout: int = 30):
        """
        初始化数据库

        Args:
            db_path: 数据库文件路径，不指定则从配置加载
            timeout: 锁等待超时（秒）
        """
        if db_path is None:
            config = get_config()
            db_path = config.database.path
            timeout = config.database.timeout

        self.db_path = Path(db_path)
        self.timeout = timeout
        self._closed = False

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        所有 sqlite3 异常统一转换为 StoreUnavailableError。
        """
        if self._closed:
            raise StoreUnavailableError("Store connection has been closed")

        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to connect to store: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(f"Store query failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        """建表并启用 WAL（写入与聚合查询并发）"""
        with self.get_conn() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_SQL)
        logger.info(f"Schema ready: {self.db_path}")

    def close(self):
        """关闭存储，之后的所有操作都会抛出 StoreUnavailableError"""
        if not self._closed:
            self._closed = True
            logger.info("Store connection closed")

    # =========================================================================
    # 交易写入
    # =========================================================================

    def insert_transaction(
        self,
        signature: str,
        pool_address: str,
        amount: float,
        ts: Optional[datetime] = None
    ) -> bool:
        """
        写入一笔交易（重复 signature 不做任何修改）

        Returns:
            是否实际插入
        """
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")

        ts_str = format_ts(ts or utcnow())
        with self.get_conn() as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO transactions (signature, pool_address, amount, timestamp)
                VALUES (?, ?, ?, ?)
            """, (signature, pool_address, amount, ts_str))
            return cursor.rowcount > 0

    # =========================================================================
    # 成交量聚合
    # =========================================================================

    def query_volume(
        self,
        pool_address: str,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        now: Optional[datetime] = None
    ) -> float:
        """
        查询 pool 在最近 window_seconds 秒内的成交量

        没有任何交易时返回 0.0。
        """
        cutoff = format_ts((now or utcnow()) - timedelta(seconds=window_seconds))

        logger.debug(f"Querying volume for pool: {pool_address}")

        with self.get_conn() as conn:
            cursor = conn.execute("""
                SELECT COALESCE(SUM(amount), 0.0) AS volume
                FROM transactions
                WHERE pool_address = ? AND timestamp >= ?
            """, (pool_address, cutoff))
            row = cursor.fetchone()

        volume = float(row["volume"]) if row is not None else 0.0
        return max(volume, 0.0)

    async def aggregate(self, pool_address: str, window_seconds: int = DEFAULT_WINDOW_SECONDS) -> float:
        """异步聚合查询（工作线程执行）"""
        return await asyncio.to_thread(self.query_volume, pool_address, window_seconds)

    async def record(
        self,
        signature: str,
        pool_address: str,
        amount: float,
        ts: Optional[datetime] = None
    ) -> bool:
        """异步写入交易（工作线程执行）"""
        return await asyncio.to_thread(self.insert_transaction, signature, pool_address, amount, ts)

    def count_transactions(self, pool_address: Optional[str] = None) -> int:
        """统计交易条数"""
        with self.get_conn() as conn:
            if pool_address is None:
                cursor = conn.execute("SELECT COUNT(*) AS n FROM transactions")
            else:
                cursor = conn.execute(
                    "SELECT COUNT(*) AS n FROM transactions WHERE pool_address = ?",
                    (pool_address,)
                )
            return int(cursor.fetchone()["n"])
