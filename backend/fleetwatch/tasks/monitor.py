"""
监控任务模块 (Monitoring Tasks)

调度器驱动的三个周期任务的单次执行逻辑：

    - broadcast_tick: 采集指标 / 资源 → 告警评估 → 推送 metrics、resources、costs、alerts
    - scaling_tick:   评估全部伸缩策略，有扩缩容或失败时推送 scaling
    - cost_tick:      刷新成本报表缓存

任一步骤抛出异常时本次执行不推送任何数据，异常由调度器记录。
"""
import logging
from typing import TYPE_CHECKING

from fleetwatch.providers.metric_source import fetch_snapshot
from fleetwatch.providers.resource_source import fetch_inventory

if TYPE_CHECKING:
    from fleetwatch.runtime import Runtime

logger = logging.getLogger(__name__)


async def broadcast_tick(rt: "Runtime") -> dict:
    settings = rt.settings
    snapshot = await fetch_snapshot(rt.metric_source, settings.metric_fetch_timeout)
    resources = await fetch_inventory(rt.resource_source, settings.resource_fetch_timeout)
    costs = await rt.cost_optimizer.get_costs()

    cost_value = costs.monthly if settings.alert_on_cost else None
    created = await rt.alert_engine.check_metrics(snapshot, cost=cost_value)
    active = await rt.alert_engine.get_active_alerts()

    rt.latest_snapshot = snapshot
    rt.latest_resources = resources

    payload = {
        "metrics": snapshot,
        "resources": resources,
        "costs": costs,
        "alerts": active,
    }
    for event, data in payload.items():
        await rt.broadcaster.publish(event, data)

    if created:
        logger.info(f"Broadcast tick raised {len(created)} new alerts")
    return {**payload, "new_alerts": created}


async def scaling_tick(rt: "Runtime") -> list:
    snapshot = await fetch_snapshot(rt.metric_source, rt.settings.metric_fetch_timeout)
    outcomes = await rt.scaling_engine.check_policies(snapshot)

    notable = [o for o in outcomes if o.executed or not o.success]
    for outcome in notable:
        logger.info(outcome.summary())
    if notable:
        await rt.broadcaster.publish("scaling", outcomes)
    return outcomes


async def cost_tick(rt: "Runtime"):
    return await rt.cost_optimizer.refresh()
