"""
成本优化服务 (Cost Optimization Service)

定期从 CostSource 拉取成本报表并缓存，向广播任务和 API 提供最近一次的成本数据，
同时根据资源清单和指标快照生成节省成本的建议。

Recommendations:
    - idle-resources: 状态为 ACTIVE 但没有运行任务的集群
    - rightsizing: 整体 CPU 利用率低于阈值时，运行中的实例可能规格过大
    - reserved-instances: 按本月成本的固定折扣估算预留实例的节省
"""
import asyncio
import calendar
import logging
from datetime import datetime, timezone
from typing import Optional

from fleetwatch.models.telemetry import CostReport, MetricSnapshot, Recommendation, ResourceInventory
from fleetwatch.providers.cost_source import CostSource, synthetic_cost_report

logger = logging.getLogger(__name__)


def project_monthly(monthly: float, today: datetime) -> float:
    """按当月已过天数线性外推整月成本。"""
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    return round(monthly / today.day * days_in_month, 2)


class CostOptimizer:
    def __init__(
        self,
        source: CostSource,
        fetch_timeout: float = 10,
        idle_cluster_monthly_cost: float = 50.0,
        rightsizing_cpu_threshold: float = 20.0,
        rightsizing_savings_ratio: float = 0.25,
        reserved_instance_discount: float = 0.3,
    ) -> None:
        self.source = source
        self.fetch_timeout = fetch_timeout
        self.idle_cluster_monthly_cost = idle_cluster_monthly_cost
        self.rightsizing_cpu_threshold = rightsizing_cpu_threshold
        self.rightsizing_savings_ratio = rightsizing_savings_ratio
        self.reserved_instance_discount = reserved_instance_discount
        self._report: Optional[CostReport] = None
        self._lock = asyncio.Lock()

    @property
    def cached_report(self) -> Optional[CostReport]:
        return self._report

    async def refresh(self) -> CostReport:
        """
        从 CostSource 拉取最新成本报表。

        拉取失败或超时时保留上一次的报表；从未成功过则使用合成报表。
        """
        async with self._lock:
            try:
                report = await asyncio.wait_for(self.source.fetch(), timeout=self.fetch_timeout)
            except asyncio.TimeoutError:
                logger.warning("Cost fetch timed out after %ss", self.fetch_timeout)
                report = None
            except Exception as e:
                logger.warning(f"Cost source failed: {e}")
                report = None

            if report is None:
                if self._report is not None:
                    return self._report
                report = synthetic_cost_report()

            if report.projected is None:
                projected = project_monthly(report.monthly, datetime.now(timezone.utc))
                report = report.model_copy(update={"projected": projected})

            self._report = report
            logger.info(f"Cost report refreshed: monthly={report.monthly} projected={report.projected}")
            return report

    async def get_costs(self) -> CostReport:
        if self._report is None:
            return await self.refresh()
        return self._report

    async def get_recommendations(
        self,
        resources: ResourceInventory,
        snapshot: Optional[MetricSnapshot] = None,
    ) -> list[Recommendation]:
        report = await self.get_costs()
        recommendations: list[Recommendation] = []

        idle = [c for c in resources.clusters if c.status.upper() == "ACTIVE" and c.running_tasks == 0]
        if idle:
            recommendations.append(
                Recommendation(
                    type="idle-resources",
                    priority="high",
                    title="Idle Resources Detected",
                    description=f"{len(idle)} resources appear to be idle and could be terminated",
                    estimated_savings=round(len(idle) * self.idle_cluster_monthly_cost, 2),
                    resources=[{"name": c.name, "estimated_cost": self.idle_cluster_monthly_cost} for c in idle],
                )
            )

        running = [i for i in resources.instances if i.state == "running"]
        if snapshot is not None and running and snapshot.cpu < self.rightsizing_cpu_threshold:
            recommendations.append(
                Recommendation(
                    type="rightsizing",
                    priority="medium",
                    title="Right-Sizing Opportunities",
                    description=(
                        f"{len(running)} instances may be over-provisioned "
                        f"(CPU {snapshot.cpu:.1f}% < {self.rightsizing_cpu_threshold:.0f}%)"
                    ),
                    estimated_savings=round(report.monthly * self.rightsizing_savings_ratio, 2),
                    resources=[{"id": i.id, "type": i.type} for i in running],
                )
            )

        recommendations.append(
            Recommendation(
                type="reserved-instances",
                priority="low",
                title="Reserved Instance Savings",
                description="Consider purchasing Reserved Instances for predictable workloads",
                estimated_savings=round(report.monthly * self.reserved_instance_discount, 2),
            )
        )
        return recommendations
