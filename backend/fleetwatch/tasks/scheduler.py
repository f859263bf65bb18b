"""
周期任务调度器 (Periodic Task Scheduler)

在同一个 asyncio 事件循环上运行若干互相独立的周期任务（broadcast / scaling / costs）。

执行规则 (Execution Rules):
    - 每个任务有超时预算，必须小于执行间隔（由 Settings 校验）
    - 一次执行开始后不会被取消：调度器通过 asyncio.shield 等待执行结果，
      超过预算只记录警告，执行继续在后台完成
    - 同一任务不会重叠执行：上一次仍在进行时，后续触发直接跳过
    - run_once(name) 按需触发一次，遵循同样的规则
    - stop() 停止调度并等待进行中的执行结束
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from fleetwatch.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class PeriodicTask:
    """单个周期任务及其运行统计。"""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval: float,
        timeout: float,
    ) -> None:
        self.name = name
        self.func = func
        self.interval = interval
        self.timeout = timeout
        self._inflight: Optional[asyncio.Task] = None
        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.overruns = 0
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def _run(self) -> Any:
        self.last_run = datetime.now(timezone.utc)
        self.runs += 1
        try:
            result = await self.func()
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.exception(f"Periodic task {self.name} failed")
            return None
        self.last_error = None
        return result

    async def tick(self) -> Any:
        """执行一次；上一次未结束时跳过并返回 None。"""
        if self.busy:
            self.skipped += 1
            logger.warning("Task %s is still running, skipping this tick", self.name)
            return None

        self._inflight = asyncio.create_task(self._run(), name=f"fleetwatch-{self.name}")
        try:
            return await asyncio.wait_for(asyncio.shield(self._inflight), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.overruns += 1
            logger.warning(
                "Task %s exceeded its %ss budget, leaving it to finish in the background",
                self.name,
                self.timeout,
            )
            return None

    async def wait_idle(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait([self._inflight])

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        logger.info("Task %s started (interval=%ss, timeout=%ss)", self.name, self.interval, self.timeout)
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Task %s stopped", self.name)

    def status(self) -> dict:
        return {
            "interval": self.interval,
            "timeout": self.timeout,
            "busy": self.busy,
            "runs": self.runs,
            "failures": self.failures,
            "skipped": self.skipped,
            "overruns": self.overruns,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


class Scheduler:
    def __init__(self) -> None:
        self.tasks: dict[str, PeriodicTask] = {}
        self._stop = asyncio.Event()
        self._runners: list[asyncio.Task] = []

    def add(self, name: str, func: Callable[[], Awaitable[Any]], interval: float, timeout: float) -> PeriodicTask:
        if timeout >= interval:
            raise ValueError(f"Task {name}: timeout ({timeout}s) must be shorter than interval ({interval}s)")
        task = PeriodicTask(name, func, interval, timeout)
        self.tasks[name] = task
        return task

    def _get(self, name: str) -> PeriodicTask:
        task = self.tasks.get(name)
        if task is None:
            raise NotFoundError("Unknown task", detail=name)
        return task

    async def run_once(self, name: str) -> Any:
        return await self._get(name).tick()

    @property
    def running(self) -> bool:
        return bool(self._runners)

    def start(self) -> None:
        if self._runners:
            return
        self._stop.clear()
        self._runners = [
            asyncio.create_task(task.run_forever(self._stop), name=f"fleetwatch-{name}-loop")
            for name, task in self.tasks.items()
        ]
        logger.info("Scheduler started with tasks: %s", ", ".join(self.tasks))

    async def stop(self) -> None:
        """停止调度，等待各任务正在进行的执行结束。"""
        self._stop.set()
        if self._runners:
            await asyncio.gather(*self._runners, return_exceptions=True)
            self._runners = []
        for task in self.tasks.values():
            await task.wait_idle()
        logger.info("Scheduler stopped")

    def status(self) -> dict:
        return {name: task.status() for name, task in self.tasks.items()}
