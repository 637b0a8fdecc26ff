"""
成交量查询 API（对外服务）

读穿透：优先查询缓存服务，失败时直接查询数据库。
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import UpstreamError
from ...models import VolumeRequest, VolumeResponse
from ...sources import VolumeSource
from ..dependencies import ensure_accepting, get_volume_source

logger = logging.getLogger(__name__)

router = APIRouter(tags=["volume"])


@router.post("/volume", response_model=VolumeResponse, dependencies=[Depends(ensure_accepting)])
async def get_volume(
    req: VolumeRequest,
    source: VolumeSource = Depends(get_volume_source)
):
    """
    查询 pool 最近 5 分钟成交量

    没有交易的 pool 返回 0；缓存与数据库都不可用时返回 500（不暴露内部错误）。
    """
    try:
        volume = await source.get_volume(req.pool_address)
    except UpstreamError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch volume"
        )

    return VolumeResponse(pool_address=req.pool_address, volume=volume)
