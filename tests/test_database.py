"""
测试数据库层：交易写入与窗口聚合
"""

from datetime import datetime, timedelta, timezone

import pytest

from pool_volume.database import Database, format_ts
from pool_volume.errors import StoreUnavailableError

from conftest import POOL_A, POOL_B


class TestQueryVolume:
    """窗口聚合测试"""

    def test_old_events_outside_window(self, db: Database):
        """测试：5 分钟以前的交易不计入"""
        now = datetime.now(timezone.utc)
        db.insert_transaction("a", "X", 3.0, ts=now)
        db.insert_transaction("b", "X", 2.0, ts=now - timedelta(minutes=10))

        assert db.query_volume("X", 300) == pytest.approx(3.0)

    def test_no_events_is_zero(self, db: Database):
        """测试：从未有交易的 pool 返回 0"""
        assert db.query_volume("Y") == 0.0

    def test_window_boundary(self, db: Database):
        """测试：窗口边界（含起点）"""
        now = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)
        db.insert_transaction("edge", POOL_A, 1.5, ts=now - timedelta(seconds=300))
        db.insert_transaction("inside", POOL_A, 2.5, ts=now - timedelta(seconds=10))
        db.insert_transaction("outside", POOL_A, 4.0, ts=now - timedelta(seconds=301))

        assert db.query_volume(POOL_A, 300, now=now) == pytest.approx(4.0)
        assert db.query_volume(POOL_A, 60, now=now) == pytest.approx(2.5)

    def test_pools_are_isolated(self, db: Database):
        """测试：不同 pool 互不影响"""
        db.insert_transaction("s1", POOL_A, 1.0)
        db.insert_transaction("s2", POOL_B, 5.0)

        assert db.query_volume(POOL_A) == pytest.approx(1.0)
        assert db.query_volume(POOL_B) == pytest.approx(5.0)

    def test_key_is_parameterized(self, db: Database):
        """测试：pool 地址中的引号不会改变查询语义"""
        db.insert_transaction("s1", POOL_A, 1.0)

        assert db.query_volume("x' OR '1'='1") == 0.0
        assert db.count_transactions() == 1

    @pytest.mark.asyncio
    async def test_async_aggregate(self, db: Database):
        """测试：异步聚合与同步结果一致"""
        db.insert_transaction("s1", POOL_A, 2.25)
        db.insert_transaction("s2", POOL_A, 0.75)

        assert await db.aggregate(POOL_A) == pytest.approx(3.0)


class TestInsertTransaction:
    """交易写入测试"""

    def test_duplicate_signature_is_noop(self, db: Database):
        """测试：重复 signature 只记一次"""
        assert db.insert_transaction("dup", POOL_A, 3.0) is True
        once = db.query_volume(POOL_A)

        assert db.insert_transaction("dup", POOL_A, 3.0) is False
        assert db.insert_transaction("dup", POOL_A, 9.0) is False
        assert db.query_volume(POOL_A) == once
        assert db.count_transactions(POOL_A) == 1

    def test_negative_amount_rejected(self, db: Database):
        with pytest.raises(ValueError):
            db.insert_transaction("neg", POOL_A, -1.0)
        assert db.count_transactions() == 0

    @pytest.mark.asyncio
    async def test_async_record(self, db: Database):
        assert await db.record("s1", POOL_A, 1.0) is True
        assert await db.record("s1", POOL_A, 1.0) is False
        assert db.count_transactions(POOL_A) == 1


class TestStoreFailures:
    """存储不可用测试"""

    def test_closed_store(self, db: Database):
        """测试：关闭后所有操作抛出 StoreUnavailableError"""
        db.close()

        assert db.closed
        with pytest.raises(StoreUnavailableError):
            db.query_volume(POOL_A)
        with pytest.raises(StoreUnavailableError):
            db.insert_transaction("s1", POOL_A, 1.0)

    def test_missing_schema(self, tmp_path):
        """测试：未建表时查询失败被转换为 StoreUnavailableError"""
        db = Database(str(tmp_path / "empty.db"))

        with pytest.raises(StoreUnavailableError):
            db.query_volume(POOL_A)

    @pytest.mark.asyncio
    async def test_async_aggregate_failure(self, db: Database):
        db.close()
        with pytest.raises(StoreUnavailableError):
            await db.aggregate(POOL_A)


def test_format_ts_is_sortable():
    """测试：时间字符串按字典序即按时间排序"""
    base = datetime(2026, 1, 20, 9, 59, 59, 999999, tzinfo=timezone.utc)
    later = base + timedelta(microseconds=1)

    assert format_ts(base) < format_ts(later)
    assert format_ts(later) == "2026-01-20T10:00:00.000000Z"
