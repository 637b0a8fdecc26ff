"""
数据模型定义

包括：
- Pydantic 请求/响应模型
- 内存缓存数据结构
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import VolumeNotFoundError


# =============================================================================
# Pydantic 请求/响应模型（用于 API 和数据验证）
# =============================================================================

class VolumeRequest(BaseModel):
    """成交量查询请求"""
    pool_address: str = Field(..., min_length=1)


class VolumeResponse(BaseModel):
    """成交量查询响应"""
    pool_address: str
    volume: float = Field(..., ge=0)


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str
    pools: Optional[int] = None


class CacheEntry(BaseModel):
    """缓存条目（updated_at 为最近一次成功刷新的时间，未刷新过为 None）"""

    model_config = ConfigDict(frozen=True)

    pool_address: str
    volume: float = 0.0
    updated_at: Optional[datetime] = None


# =============================================================================
# 内存缓存
# =============================================================================

class VolumeCache:
    """
    成交量缓存

    固定注册表：initialize() 之后每个 pool 恰好有一个条目，只会被覆盖，不会删除。
    锁只包住单个条目的读/写（或一次快照复制），临界区内没有 await。
    """

    def __init__(self):
        # {pool_address: CacheEntry}
        self._entries: Dict[str, CacheEntry] = {}
        self._initialized = False
        self._lock = asyncio.Lock()

    def initialize(self, pool_addresses: Iterable[str], default: float = 0.0):
        """启动时注册所有 pool（只能调用一次）"""
        if self._initialized:
            raise RuntimeError("VolumeCache is already initialized")
        for address in pool_addresses:
            self._entries[address] = CacheEntry(pool_address=address, volume=default)
        self._initialized = True

    @property
    def pool_addresses(self) -> List[str]:
        return list(self._entries.keys())

    def __contains__(self, pool_address: str) -> bool:
        return pool_address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, pool_address: str) -> Optional[float]:
        """获取成交量（未注册返回 None，与 0.0 区分）"""
        async with self._lock:
            entry = self._entries.get(pool_address)
        return entry.volume if entry is not None else None

    async def get_entry(self, pool_address: str) -> Optional[CacheEntry]:
        async with self._lock:
            return self._entries.get(pool_address)

    async def set(self, pool_address: str, volume: float):
        """覆盖条目；未注册的 pool 不允许写入"""
        entry = CacheEntry(pool_address=pool_address, volume=volume, updated_at=datetime.now(timezone.utc))
        async with self._lock:
            if pool_address not in self._entries:
                raise VolumeNotFoundError(pool_address)
            self._entries[pool_address] = entry

    async def get_all(self) -> Dict[str, CacheEntry]:
        """获取所有条目的快照"""
        async with self._lock:
            return self._entries.copy()
