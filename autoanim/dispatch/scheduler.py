"""
协作式调度 - 单线程 asyncio

挂起点只有三类：物品音效延迟、等待模板创建、把序列交给渲染引擎。
每个宿主事件作为独立任务运行，任务异常只记录日志，不影响其他任务。
"""

import asyncio
import logging
from typing import Coroutine, List, Optional, Set, Tuple

from ..models import TemplateData

logger = logging.getLogger(__name__)


class PlaybackScheduler:

    def __init__(self):
        # (origin, 等待模板的 future)，按登记顺序；同一 origin 可以有多个等待者
        self._waiters: List[Tuple[str, asyncio.Future]] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self):
        return list(dict.fromkeys(origin for origin, _ in self._waiters))

    # ------------------------------------------------------------------ #
    # 任务
    # ------------------------------------------------------------------ #

    def spawn(self, coro: Coroutine, name: str = "") -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, name))
        return task

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Task %s cancelled", name or task)
            return
        exc = task.exception()
        if exc is not None:
            logger.exception("Dispatch task %s failed", name or task, exc_info=exc)

    async def drain(self) -> None:
        """等待所有已提交的任务结束（包括执行过程中新提交的任务）"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    async def after(ms: int) -> None:
        if ms > 0:
            await asyncio.sleep(ms / 1000.0)

    # ------------------------------------------------------------------ #
    # 模板等待
    # ------------------------------------------------------------------ #

    async def wait_for_template(self, origin: str, timeout: float) -> Optional[TemplateData]:
        """
        挂起直到宿主通知模板已创建。

        Returns:
            模板数据；超时或被撤回时返回 None
        """
        future = asyncio.get_running_loop().create_future()
        waiter = (origin, future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning("Template for origin %s not created within %.1fs", origin, timeout)
            return None
        finally:
            self._waiters.remove(waiter)

    def template_created(self, template: TemplateData, origin: Optional[str] = None) -> bool:
        """
        模板创建通知。带 origin 时唤醒该 origin 最早登记的等待者；否则唤醒全局最早的等待者。

        Returns:
            是否有等待者被唤醒
        """
        future = next((f for o, f in self._waiters
                       if not f.done() and (origin is None or o == origin)), None)
        if future is None:
            logger.debug("Template %s created with nobody waiting", template.id or template.shape)
            return False
        future.set_result(template)
        return True

    def cancel(self, origin: str) -> None:
        for o, future in self._waiters:
            if o == origin and not future.done():
                future.set_result(None)
