"""
FleetWatch 测试基础配置

提供内存文档存储、mock Redis、可控时钟、固定指标来源以及 FastAPI 测试客户端等通用 fixture。
所有测试使用进程内存储，不依赖外部 Redis 或集群管理 API。
"""
import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# 必须在导入 fleetwatch 之前设置环境变量，避免写入真实数据目录
os.environ["FLEETWATCH_STORE_BACKEND"] = "memory"
os.environ["FLEETWATCH_METRIC_SOURCE"] = "synthetic"
os.environ["FLEETWATCH_EXECUTOR"] = "dry_run"

from fleetwatch.core.config import Settings
from fleetwatch.models.alert import Alert, AlertRule
from fleetwatch.models.scaling import ScalingPolicy
from fleetwatch.models.telemetry import MetricSnapshot
from fleetwatch.providers.command_executor import DryRunCommandExecutor
from fleetwatch.providers.metric_source import MetricSource
from fleetwatch.services.alert_engine import AlertEngine
from fleetwatch.services.alert_seed import default_policies, default_rules
from fleetwatch.services.scaling_engine import ScalingEngine
from fleetwatch.storage.collection import DocumentCollection
from fleetwatch.storage.document_store import DocumentNotFound, MemoryDocumentStore


# ── Mock Redis ────────────────────────────────────────────────────────
class FakeRedis:
    """内存级 Redis 模拟，支持基本 get/set/delete 操作。"""
    def __init__(self):
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, **kwargs) -> None:
        self._store[key] = value

    async def delete(self, *keys: str) -> None:
        for k in keys:
            self._store.pop(k, None)

    async def exists(self, key: str) -> int:
        return 1 if key in self._store else 0

    async def close(self) -> None:
        pass


# ── Helpers ───────────────────────────────────────────────────────────
T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """可手动推进的时钟。"""
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def make_snapshot(cpu: float = 50.0, memory: float = 50.0, network_in: float = 0.0, network_out: float = 0.0) -> MetricSnapshot:
    return MetricSnapshot(cpu=cpu, memory=memory, network_in=network_in, network_out=network_out, timestamp=T0)


class LatentStore(MemoryDocumentStore):
    """每次读写先取数据再让出事件循环，模拟 file / redis 后端的 I/O 延迟。

    slow_first_read 指定的集合第一次读取额外等待 stale_delay 秒，读到的是开始时的旧数据。
    """
    def __init__(self, delay: float = 0.005, slow_first_read: str | None = None, stale_delay: float = 0.05):
        super().__init__()
        self.delay = delay
        self.slow_first_read = slow_first_read
        self.stale_delay = stale_delay

    async def load_all(self, name: str) -> list[dict]:
        try:
            result = await super().load_all(name)
        except DocumentNotFound as e:
            result = e
        if name == self.slow_first_read:
            self.slow_first_read = None
            await asyncio.sleep(self.stale_delay)
        else:
            await asyncio.sleep(self.delay)
        if isinstance(result, DocumentNotFound):
            raise result
        return result

    async def save_all(self, name: str, documents: list[dict]) -> None:
        await asyncio.sleep(self.delay)
        await super().save_all(name, documents)


class StaticMetricSource(MetricSource):
    """每次返回同一个快照，测试中可直接修改 snapshot。"""
    def __init__(self, snapshot: MetricSnapshot | None = None):
        self.snapshot = snapshot or make_snapshot()

    async def fetch(self) -> MetricSnapshot:
        return self.snapshot


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def rules(store) -> DocumentCollection[AlertRule]:
    return DocumentCollection(store, "alert_rules", AlertRule, defaults=default_rules)


@pytest.fixture
def alerts(store) -> DocumentCollection[Alert]:
    return DocumentCollection(store, "alerts", Alert)


@pytest.fixture
def policies(store) -> DocumentCollection[ScalingPolicy]:
    return DocumentCollection(store, "scaling_policies", ScalingPolicy, defaults=default_policies)


@pytest.fixture
def alert_engine(rules, alerts, clock) -> AlertEngine:
    return AlertEngine(rules, alerts, clock=clock)


@pytest.fixture
def executor() -> DryRunCommandExecutor:
    return DryRunCommandExecutor({"web-service": 4})


@pytest.fixture
def scaling_engine(policies, executor, clock) -> ScalingEngine:
    return ScalingEngine(policies, executor, command_timeout=1, clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(store_backend="memory", metric_source="synthetic", executor="dry_run")


@pytest.fixture
def metric_source() -> StaticMetricSource:
    return StaticMetricSource()


@pytest_asyncio.fixture
async def runtime(test_settings, store, metric_source, executor):
    """装配好的 Runtime（内存存储、固定指标、dry-run 执行器），不启动调度循环。"""
    from fleetwatch.runtime import build_runtime

    rt = await build_runtime(test_settings, store=store, metric_source=metric_source, executor=executor)
    yield rt
    await rt.close()


@pytest_asyncio.fixture
async def client(runtime, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """提供挂载了测试 Runtime 的异步 HTTP 测试客户端。"""
    from fleetwatch.main import create_app

    app = create_app(settings=test_settings, runtime=runtime, start_scheduler=False)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
