"""
遥测数据路由 (Telemetry Router)

当前指标、资源清单、成本报表、成本优化建议以及健康检查。
指标和资源每次请求都实时拉取（带超时，失败时返回合成数据）。
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from fleetwatch import __version__
from fleetwatch.core.deps import get_runtime
from fleetwatch.models.telemetry import CostReport, MetricSnapshot, Recommendation, ResourceInventory
from fleetwatch.providers.metric_source import fetch_snapshot
from fleetwatch.providers.resource_source import fetch_inventory
from fleetwatch.runtime import Runtime

router = APIRouter(prefix="/api/v1", tags=["telemetry"])


@router.get("/health")
async def health(rt: Runtime = Depends(get_runtime)):
    """
    健康检查接口 (Health Check)

    返回服务状态、版本以及各周期任务的运行统计。
    """
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store": rt.settings.store_backend,
        "executor": rt.settings.executor,
        "subscribers": rt.broadcaster.subscriber_count,
        "tasks": rt.scheduler.status(),
    }


@router.get("/metrics", response_model=MetricSnapshot)
async def get_metrics(rt: Runtime = Depends(get_runtime)):
    return await fetch_snapshot(rt.metric_source, rt.settings.metric_fetch_timeout)


@router.get("/resources", response_model=ResourceInventory)
async def get_resources(rt: Runtime = Depends(get_runtime)):
    return await fetch_inventory(rt.resource_source, rt.settings.resource_fetch_timeout)


@router.get("/costs", response_model=CostReport)
async def get_costs(rt: Runtime = Depends(get_runtime)):
    """最近一次的成本报表（每小时刷新，首次请求时拉取）。"""
    return await rt.cost_optimizer.get_costs()


@router.get("/costs/recommendations", response_model=list[Recommendation])
async def get_recommendations(rt: Runtime = Depends(get_runtime)):
    """根据当前资源清单和指标生成成本优化建议。"""
    resources = rt.latest_resources or await fetch_inventory(rt.resource_source, rt.settings.resource_fetch_timeout)
    snapshot = rt.latest_snapshot or await fetch_snapshot(rt.metric_source, rt.settings.metric_fetch_timeout)
    return await rt.cost_optimizer.get_recommendations(resources, snapshot)
