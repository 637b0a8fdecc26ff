"""
健康检查 API
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from ...models import HealthResponse
from ...shutdown import ShutdownCoordinator
from ..dependencies import get_shutdown

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def get_health(request: Request, shutdown: ShutdownCoordinator = Depends(get_shutdown)):
    """返回服务状态；退出过程中为 shutting_down"""
    cache = getattr(request.app.state, "cache", None)
    pools: Optional[int] = len(cache) if cache is not None else None

    return HealthResponse(
        status="shutting_down" if shutdown.is_cancelled else "ok",
        pools=pools
    )
