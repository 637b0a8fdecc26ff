"""
FastAPI 应用配置

- create_cache_app：缓存服务（内存缓存查询）
- create_server_app：对外服务（读穿透查询，开放 CORS）
"""

from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..models import VolumeCache
from ..shutdown import ShutdownCoordinator
from ..sources import VolumeSource
from .routers import cache, health, volume


def create_cache_app(volume_cache: VolumeCache, shutdown: ShutdownCoordinator) -> FastAPI:
    """
    创建缓存服务应用

    缓存实例由调用方创建并注入（与刷新循环共享）。
    """
    app = FastAPI(
        title="Pool Volume Cache",
        description="Pool 成交量内存缓存",
        version="1.0.0",
    )
    app.state.cache = volume_cache
    app.state.shutdown = shutdown

    app.include_router(cache.router)
    app.include_router(health.router)

    return app


def create_server_app(
    source: VolumeSource,
    shutdown: ShutdownCoordinator,
    cors_origins: Optional[List[str]] = None
) -> FastAPI:
    """
    创建对外查询服务应用

    配置：
    - CORS 中间件（前端页面直接调用）
    - 成交量查询路由
    """
    app = FastAPI(
        title="Pool Volume Server",
        description="Pool 成交量查询服务",
        version="1.0.0",
    )
    app.state.source = source
    app.state.shutdown = shutdown

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if cors_origins is None else cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    app.include_router(volume.router)
    app.include_router(health.router)

    return app
