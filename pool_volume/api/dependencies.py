"""
依赖注入模块

所有共享对象在 create_*_app 时挂到 app.state 上，通过依赖项注入路由。
"""

from fastapi import HTTPException, Request, status

from ..errors import ShutdownInProgressError
from ..models import VolumeCache
from ..shutdown import ShutdownCoordinator
from ..sources import VolumeSource


async def get_volume_cache(request: Request) -> VolumeCache:
    """获取缓存实例"""
    return request.app.state.cache


async def get_volume_source(request: Request) -> VolumeSource:
    """获取成交量数据源"""
    return request.app.state.source


async def get_shutdown(request: Request) -> ShutdownCoordinator:
    return request.app.state.shutdown


async def ensure_accepting(request: Request):
    """
    退出过程中拒绝新请求

    返回 503，而不是让请求挂起到连接被关闭。
    """
    shutdown: ShutdownCoordinator = request.app.state.shutdown
    try:
        shutdown.ensure_running()
    except ShutdownInProgressError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )
