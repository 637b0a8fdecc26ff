"""
缓存查询 API（缓存服务）

只读内存缓存，不访问数据库。
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...models import VolumeCache, VolumeRequest, VolumeResponse
from ..dependencies import ensure_accepting, get_volume_cache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cache"])


@router.post("/volume", response_model=VolumeResponse, dependencies=[Depends(ensure_accepting)])
async def get_cached_volume(
    req: VolumeRequest,
    cache: VolumeCache = Depends(get_volume_cache)
):
    """
    查询缓存中的成交量

    未注册的 pool 返回 404（由调用方回退到数据库）。
    """
    logger.info(f"Received volume request for pool: {req.pool_address}")

    volume = await cache.get(req.pool_address)
    if volume is None:
        logger.error(f"Volume not found in cache for pool: {req.pool_address}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Volume not found in cache"
        )

    return VolumeResponse(pool_address=req.pool_address, volume=volume)
