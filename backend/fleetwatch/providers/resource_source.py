"""
资源清单来源 (Resource Inventory Source)

列出实例和容器集群。与 MetricSource 一样，失败时返回合成清单而不是抛出异常。
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from fleetwatch.models.telemetry import Cluster, Instance, ResourceInventory

logger = logging.getLogger(__name__)


def synthetic_inventory() -> ResourceInventory:
    """开发环境使用的固定资源清单。"""
    now = datetime.now(timezone.utc)
    return ResourceInventory(
        instances=[
            Instance(
                id="i-1234567890abcdef0",
                type="t3.medium",
                state="running",
                launch_time=now - timedelta(days=1),
                tags={"Name": "Web Server"},
            ),
            Instance(
                id="i-0987654321fedcba0",
                type="t3.large",
                state="running",
                launch_time=now - timedelta(days=2),
                tags={"Name": "Database Server"},
            ),
        ],
        clusters=[
            Cluster(name="production-cluster", status="ACTIVE", running_tasks=12, pending_tasks=2, active_services=5),
            Cluster(name="staging-cluster", status="ACTIVE", running_tasks=6, pending_tasks=0, active_services=3),
        ],
        timestamp=now,
        synthetic=True,
    )


class ResourceSource(ABC):
    @abstractmethod
    async def fetch(self) -> ResourceInventory:
        """返回当前资源清单；不得抛出异常。"""


class SyntheticResourceSource(ResourceSource):
    async def fetch(self) -> ResourceInventory:
        return synthetic_inventory()


async def fetch_inventory(source: ResourceSource, timeout: float) -> ResourceInventory:
    try:
        return await asyncio.wait_for(source.fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Resource fetch timed out after %ss, using synthetic inventory", timeout)
    except Exception:
        logger.exception("Resource source raised, using synthetic inventory")
    return synthetic_inventory()
