"""
成交量数据源

- PeerCacheSource：查询缓存服务（httpx，带超时）
- OriginVolumeSource：直接查询数据库
- ReadThroughVolumeSource：先查缓存，失败回退到数据库
"""

import logging
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from .database import Database, DEFAULT_WINDOW_SECONDS
from .errors import (
    MalformedPeerResponseError,
    PeerCacheUnreachableError,
    StoreUnavailableError,
    UpstreamError,
)
from .models import VolumeRequest, VolumeResponse

logger = logging.getLogger(__name__)


class VolumeSource(Protocol):
    async def get_volume(self, pool_address: str) -> float:
        ...


class PeerCacheSource:
    """缓存服务客户端"""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, pool_address: str) -> VolumeResponse:
        """
        拉取缓存中的成交量

        Raises:
            PeerCacheUnreachableError: 网络错误、超时或非 2xx
            MalformedPeerResponseError: 响应体无法解析或 pool 不匹配
        """
        payload = VolumeRequest(pool_address=pool_address).model_dump()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PeerCacheUnreachableError(
                f"Cache returned status {e.response.status_code} for pool {pool_address}"
            ) from e
        except httpx.HTTPError as e:
            raise PeerCacheUnreachableError(f"Failed to send request to cache server: {e!r}") from e

        try:
            result = VolumeResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise MalformedPeerResponseError(f"Failed to parse cache response: {e}") from e

        if result.pool_address != pool_address:
            raise MalformedPeerResponseError(
                f"Cache answered for pool {result.pool_address}, expected {pool_address}"
            )
        return result

    async def get_volume(self, pool_address: str) -> float:
        return (await self.fetch(pool_address)).volume


class OriginVolumeSource:
    """直接查询数据库"""

    def __init__(self, db: Database, window_seconds: int = DEFAULT_WINDOW_SECONDS):
        self.db = db
        self.window_seconds = window_seconds

    async def get_volume(self, pool_address: str) -> float:
        return await self.db.aggregate(pool_address, self.window_seconds)


class ReadThroughVolumeSource:
    """
    读穿透：先查 primary（缓存），失败时回退到 fallback（数据库）

    回退成功后不回写缓存。
    """

    def __init__(self, primary: VolumeSource, fallback: VolumeSource):
        self.primary = primary
        self.fallback = fallback

    async def get_volume(self, pool_address: str) -> float:
        try:
            volume = await self.primary.get_volume(pool_address)
            logger.debug(f"Cache hit for pool_address={pool_address}: volume={volume}")
            return volume
        except PeerCacheUnreachableError as e:
            logger.debug(f"Cache miss or error for pool_address={pool_address}: {e}")
        except MalformedPeerResponseError as e:
            logger.warning(f"Malformed cache response for pool_address={pool_address}: {e}")

        try:
            return await self.fallback.get_volume(pool_address)
        except StoreUnavailableError as e:
            logger.error(f"Failed to fetch volume from database: {e}")
            raise UpstreamError("Failed to fetch volume") from e
