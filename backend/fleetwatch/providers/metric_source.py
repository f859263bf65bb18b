"""
指标来源模块 (Metric Source Module)

MetricSource.fetch() 约定永不抛出异常：采集失败时返回兜底的合成样本（synthetic=True），
核心逻辑把任何快照都视为合法输入。

Implementations:
    - PsutilMetricSource: 使用 psutil 采集本机 CPU、内存和网络速率
    - SyntheticMetricSource: 在固定区间内随机生成样本（开发环境 / 无云凭证时）
"""
import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import psutil

from fleetwatch.models.telemetry import MetricSnapshot

logger = logging.getLogger(__name__)

# 合成样本的取值区间
SYNTHETIC_RANGES = {
    "cpu": (30, 80),
    "memory": (40, 85),
    "network_in": (1000, 10000),
    "network_out": (500, 5000),
}


def synthetic_snapshot(rng: Optional[random.Random] = None) -> MetricSnapshot:
    """生成一个合成快照，各指标为区间内的随机整数。"""
    rng = rng or random
    values = {name: float(rng.randint(lo, hi)) for name, (lo, hi) in SYNTHETIC_RANGES.items()}
    return MetricSnapshot(**values, timestamp=datetime.now(timezone.utc), synthetic=True)


class MetricSource(ABC):
    """指标来源接口。"""

    @abstractmethod
    async def fetch(self) -> MetricSnapshot:
        """返回当前快照；不得抛出异常。"""


class SyntheticMetricSource(MetricSource):
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng

    async def fetch(self) -> MetricSnapshot:
        return synthetic_snapshot(self.rng)


class PsutilMetricSource(MetricSource):
    """采集本机系统指标。

    网络速率通过与上次采集的差值计算（KB/s），首次采集时速率为 0。
    psutil 调用是阻塞的，放到默认线程池执行，避免阻塞事件循环。
    """

    def __init__(self, cpu_sample_interval: float = 0.5) -> None:
        self.cpu_sample_interval = cpu_sample_interval
        self._prev_net: Optional[dict] = None
        self._prev_time: Optional[float] = None

    def _collect(self) -> dict:
        cpu_percent = psutil.cpu_percent(interval=self.cpu_sample_interval)
        mem = psutil.virtual_memory()

        net = psutil.net_io_counters()
        now = time.monotonic()
        send_rate_kb = 0.0
        recv_rate_kb = 0.0
        if self._prev_net is not None and self._prev_time is not None:
            dt = now - self._prev_time
            if dt > 0:
                send_rate_kb = round((net.bytes_sent - self._prev_net["bytes_sent"]) / 1024 / dt, 2)
                recv_rate_kb = round((net.bytes_recv - self._prev_net["bytes_recv"]) / 1024 / dt, 2)
        self._prev_net = {"bytes_sent": net.bytes_sent, "bytes_recv": net.bytes_recv}
        self._prev_time = now

        return {
            "cpu": round(cpu_percent, 1),
            "memory": round(mem.percent, 1),
            "network_in": recv_rate_kb,
            "network_out": send_rate_kb,
        }

    async def fetch(self) -> MetricSnapshot:
        loop = asyncio.get_running_loop()
        try:
            values = await loop.run_in_executor(None, self._collect)
        except Exception as e:
            logger.warning(f"psutil collection failed, using synthetic sample: {e}")
            return synthetic_snapshot()
        return MetricSnapshot(**values, timestamp=datetime.now(timezone.utc))


async def fetch_snapshot(source: MetricSource, timeout: float) -> MetricSnapshot:
    """带超时地调用 source.fetch()；超时或违约抛错时返回合成样本。"""
    try:
        return await asyncio.wait_for(source.fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Metric fetch timed out after %ss, using synthetic sample", timeout)
    except Exception:
        logger.exception("Metric source raised, using synthetic sample")
    return synthetic_snapshot()
