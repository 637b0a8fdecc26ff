"""
主程序入口

缓存服务（pool-volume-cache）启动两个并发任务：
1. 30s 缓存刷新循环
2. 缓存查询 API

对外服务（pool-volume-server）启动两个并发任务：
1. 20ms 模拟交易生成循环
2. 成交量查询 API（读穿透）

收到 SIGINT/SIGTERM 后：停止所有循环 -> join 所有任务 -> 关闭存储。
"""

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import FastAPI

from .config import AppConfig, get_config
from .database import Database
from .generator import TransactionGenerator
from .models import VolumeCache
from .refresher import CacheRefresher
from .shutdown import ShutdownCoordinator
from .sources import OriginVolumeSource, PeerCacheSource, ReadThroughVolumeSource

logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_log_handlers(config: AppConfig) -> List[logging.Handler]:
    """stdout 输出；配置了 logging.file 时追加按大小轮转的文件日志"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_config = config.logging
    if log_config.file:
        log_path = Path(log_config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            str(log_path),
            maxBytes=log_config.max_size_mb * 1024 * 1024,
            backupCount=log_config.backup_count,
            encoding="utf-8",
        ))

    return handlers


def setup_logging(config: Optional[AppConfig] = None):
    """配置日志"""
    config = config or get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=build_log_handlers(config))

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def open_database(config: AppConfig) -> Database:
    """打开数据库并建表"""
    db = Database(config.database.path, timeout=config.database.timeout)
    db.init_schema()
    logger.info(f"Connected to the database: {db.db_path}")
    return db


async def run_api_server(app: FastAPI, host: str, port: int, shutdown: ShutdownCoordinator):
    """
    运行 API 服务器

    收到退出信号后停止接收新连接；服务器自行退出时也会触发全局退出。
    """
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="info",
        access_log=False  # 我们用自己的日志
    )
    server = uvicorn.Server(server_config)

    async def _stop_on_shutdown():
        await shutdown.wait()
        server.should_exit = True

    watcher = asyncio.create_task(_stop_on_shutdown(), name="api-shutdown-watcher")
    logger.info(f"HTTP server listening on {host}:{port}")
    try:
        await server.serve()
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
        shutdown.trigger("api server stopped")


async def drain(shutdown: ShutdownCoordinator, db: Database, timeout: float):
    """等待所有任务退出后再关闭存储"""
    await shutdown.join(timeout=timeout)
    db.close()


async def run_cache_service(config: AppConfig):
    """缓存服务：刷新循环 + 缓存查询 API"""
    from .api.app import create_cache_app

    db = open_database(config)

    cache = VolumeCache()
    cache.initialize(config.cache.pool_addresses)
    logger.info(f"Registered {len(cache)} pools")

    shutdown = ShutdownCoordinator()
    shutdown.install_signal_handlers()

    refresher = CacheRefresher(
        db,
        cache,
        shutdown,
        interval=config.cache.refresh_interval,
        window_seconds=config.cache.window_seconds,
    )
    app = create_cache_app(cache, shutdown)

    try:
        shutdown.supervise(refresher.run(), name="cache-refresher")
        shutdown.supervise(
            run_api_server(app, config.cache.host, config.cache.port, shutdown),
            name="cache-api",
        )
        await shutdown.wait()
    finally:
        shutdown.trigger("main exiting")
        await drain(shutdown, db, config.shutdown.drain_timeout)

    logger.info("Cache service has shut down.")


async def run_volume_server(config: AppConfig):
    """对外服务：模拟交易生成 + 读穿透查询 API"""
    from .api.app import create_server_app

    db = open_database(config)

    shutdown = ShutdownCoordinator()
    shutdown.install_signal_handlers()

    source = ReadThroughVolumeSource(
        primary=PeerCacheSource(config.server.cache_url, timeout=config.server.cache_timeout),
        fallback=OriginVolumeSource(db, window_seconds=config.server.window_seconds),
    )
    app = create_server_app(source, shutdown, cors_origins=config.server.cors_origins)

    try:
        if config.generator.enabled:
            generator = TransactionGenerator(
                db,
                shutdown,
                pool_address=config.generator.pool_address,
                interval=config.generator.interval,
                min_amount=config.generator.min_amount,
                max_amount=config.generator.max_amount,
                report_interval=config.generator.report_interval,
            )
            shutdown.supervise(generator.run(), name="transaction-generator")
        else:
            logger.info("Transaction generator disabled")

        shutdown.supervise(
            run_api_server(app, config.server.host, config.server.port, shutdown),
            name="server-api",
        )
        await shutdown.wait()
    finally:
        shutdown.trigger("main exiting")
        await drain(shutdown, db, config.shutdown.drain_timeout)

    logger.info("Server has shut down.")


def run_service(entry, config: Optional[AppConfig] = None):
    config = config or get_config()
    setup_logging(config)
    logger.info("=" * 60)
    logger.info("Pool Volume Service v1.0.0")
    logger.info("=" * 60)
    try:
        asyncio.run(entry(config))
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


def cache_cli():
    """命令行入口：缓存服务"""
    run_service(run_cache_service)


def server_cli():
    """命令行入口：对外服务"""
    run_service(run_volume_server)
