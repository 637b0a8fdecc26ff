"""
优雅退出协调

单一的取消信号（广播，不会被消费），所有长期运行的循环在每轮迭代边界检查它。
同时持有所有后台任务句柄，退出时统一 join，保证存储连接关闭前没有在途查询。
"""

import asyncio
import logging
import signal
from typing import Coroutine, List, Optional

from .errors import ShutdownInProgressError

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """取消信号 + 任务监管"""

    def __init__(self):
        self._event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def trigger(self, reason: str = "stop requested"):
        """触发取消（幂等，只有第一次生效）"""
        if self._event.is_set():
            return
        self.reason = reason
        logger.info(f"Shutting down gracefully ({reason})...")
        self._event.set()

    def ensure_running(self):
        """已取消时抛出 ShutdownInProgressError"""
        if self._event.is_set():
            raise ShutdownInProgressError("Service is shutting down")

    async def wait(self):
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        等待 seconds 秒，取消时提前返回

        Returns:
            是否已被取消
        """
        if seconds <= 0:
            return self.is_cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self.is_cancelled

    # =========================================================================
    # 任务监管
    # =========================================================================

    def supervise(self, coro: Coroutine, name: str) -> asyncio.Task:
        """启动后台任务并保留句柄；任务异常退出时触发全局退出"""
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._on_task_done)
        self._tasks.append(task)
        return task

    @property
    def tasks(self) -> List[asyncio.Task]:
        return list(self._tasks)

    def _on_task_done(self, task: asyncio.Task):
        if task.cancelled() or self.is_cancelled:
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Task {task.get_name()} failed: {error!r}")
            self.trigger(f"task {task.get_name()} failed")
        else:
            logger.warning(f"Task {task.get_name()} exited before shutdown")

    async def join(self, timeout: Optional[float] = None):
        """
        等待所有任务结束

        超过 timeout 仍未结束的任务会被 cancel。任务异常只记录日志。
        """
        if not self._tasks:
            return

        done, pending = await asyncio.wait(self._tasks, timeout=timeout)

        if pending:
            logger.warning(f"Cancelling {len(pending)} task(s) still running after {timeout}s")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"Task {task.get_name()} ended with error: {error!r}")

        logger.info(f"All {len(self._tasks)} task(s) joined")

    # =========================================================================
    # 信号处理
    # =========================================================================

    def install_signal_handlers(self):
        """SIGINT/SIGTERM 触发取消"""
        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.trigger, f"received {sig.name}")
            except (NotImplementedError, RuntimeError):
                # Windows 事件循环不支持 add_signal_handler
                signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self.trigger, f"received {signal.Signals(signum).name}"
                    ),
                )
