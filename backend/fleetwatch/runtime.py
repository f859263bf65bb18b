"""
运行时装配模块 (Runtime Wiring Module)

根据 Settings 创建存储、外部协作者、引擎、广播器和调度器，并把它们装配成一个 Runtime。
FastAPI 应用和 CLI 共用同一套装配逻辑；测试可以替换其中任意组件。
"""
import logging
from typing import Optional

from fleetwatch.core.config import Settings, settings as default_settings
from fleetwatch.models.alert import Alert, AlertRule
from fleetwatch.models.scaling import ScalingPolicy
from fleetwatch.models.telemetry import MetricSnapshot, ResourceInventory
from fleetwatch.providers.command_executor import CommandExecutor, DryRunCommandExecutor, HttpCommandExecutor
from fleetwatch.providers.cost_source import CostSource, SyntheticCostSource
from fleetwatch.providers.metric_source import MetricSource, PsutilMetricSource, SyntheticMetricSource
from fleetwatch.providers.resource_source import ResourceSource, SyntheticResourceSource
from fleetwatch.services.alert_engine import AlertEngine
from fleetwatch.services.alert_seed import default_policies, default_rules
from fleetwatch.services.broadcaster import EventBroadcaster
from fleetwatch.services.cost_optimizer import CostOptimizer
from fleetwatch.services.scaling_engine import ScalingEngine
from fleetwatch.storage.collection import DocumentCollection
from fleetwatch.storage.document_store import (
    DocumentStore,
    JsonFileDocumentStore,
    MemoryDocumentStore,
    RedisDocumentStore,
)
from fleetwatch.tasks.monitor import broadcast_tick, cost_tick, scaling_tick
from fleetwatch.tasks.scheduler import Scheduler

logger = logging.getLogger(__name__)


class Runtime:
    """一个进程内的全部组件。"""

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        alert_engine: AlertEngine,
        scaling_engine: ScalingEngine,
        cost_optimizer: CostOptimizer,
        metric_source: MetricSource,
        resource_source: ResourceSource,
        executor: CommandExecutor,
        broadcaster: EventBroadcaster,
    ) -> None:
        self.settings = settings
        self.store = store
        self.alert_engine = alert_engine
        self.scaling_engine = scaling_engine
        self.cost_optimizer = cost_optimizer
        self.metric_source = metric_source
        self.resource_source = resource_source
        self.executor = executor
        self.broadcaster = broadcaster
        self.latest_snapshot: Optional[MetricSnapshot] = None
        self.latest_resources: Optional[ResourceInventory] = None

        self.scheduler = Scheduler()
        self.scheduler.add(
            "broadcast", lambda: broadcast_tick(self), settings.broadcast_interval, settings.broadcast_timeout
        )
        self.scheduler.add(
            "scaling", lambda: scaling_tick(self), settings.scaling_interval, settings.scaling_timeout
        )
        self.scheduler.add(
            "costs", lambda: cost_tick(self), settings.cost_interval, settings.cost_timeout
        )

    async def close(self) -> None:
        """停止调度并释放外部连接。"""
        await self.scheduler.stop()
        await self.executor.close()
        await self.store.close()
        if self.settings.store_backend == "redis":
            from fleetwatch.core.redis import close_redis
            await close_redis()


async def build_store(settings: Settings) -> DocumentStore:
    backend = settings.store_backend
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "file":
        return JsonFileDocumentStore(settings.data_dir)
    if backend == "redis":
        from fleetwatch.core.redis import get_redis
        return RedisDocumentStore(await get_redis(settings.redis_url), key_prefix=settings.redis_key_prefix)
    raise ValueError(f"Unknown store backend: {backend}")


def build_metric_source(settings: Settings) -> MetricSource:
    if settings.metric_source == "psutil":
        return PsutilMetricSource()
    if settings.metric_source == "synthetic":
        return SyntheticMetricSource()
    raise ValueError(f"Unknown metric source: {settings.metric_source}")


def build_executor(settings: Settings) -> CommandExecutor:
    if settings.executor == "http":
        return HttpCommandExecutor(settings.fleet_api_url, settings.fleet_api_token, timeout=settings.command_timeout)
    if settings.executor == "dry_run":
        return DryRunCommandExecutor(settings.dry_run_services)
    raise ValueError(f"Unknown executor: {settings.executor}")


async def build_runtime(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    metric_source: Optional[MetricSource] = None,
    resource_source: Optional[ResourceSource] = None,
    cost_source: Optional[CostSource] = None,
    executor: Optional[CommandExecutor] = None,
) -> Runtime:
    """按配置装配 Runtime；显式传入的组件优先于配置。"""
    settings = settings or default_settings
    store = store or await build_store(settings)
    executor = executor or build_executor(settings)

    rules = DocumentCollection(store, "alert_rules", AlertRule, defaults=default_rules)
    alerts = DocumentCollection(store, "alerts", Alert)
    policies = DocumentCollection(store, "scaling_policies", ScalingPolicy, defaults=default_policies)

    runtime = Runtime(
        settings=settings,
        store=store,
        alert_engine=AlertEngine(rules, alerts, max_alerts=settings.max_alerts),
        scaling_engine=ScalingEngine(policies, executor, command_timeout=settings.command_timeout),
        cost_optimizer=CostOptimizer(
            cost_source or SyntheticCostSource(),
            fetch_timeout=settings.cost_fetch_timeout,
            idle_cluster_monthly_cost=settings.idle_cluster_monthly_cost,
            rightsizing_cpu_threshold=settings.rightsizing_cpu_threshold,
            rightsizing_savings_ratio=settings.rightsizing_savings_ratio,
            reserved_instance_discount=settings.reserved_instance_discount,
        ),
        metric_source=metric_source or build_metric_source(settings),
        resource_source=resource_source or SyntheticResourceSource(),
        executor=executor,
        broadcaster=EventBroadcaster(),
    )
    logger.info(
        "Runtime ready (store=%s, metrics=%s, executor=%s)",
        settings.store_backend,
        settings.metric_source,
        settings.executor,
    )
    return runtime
