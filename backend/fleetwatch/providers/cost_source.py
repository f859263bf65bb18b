"""
成本数据来源 (Cost Data Source)

提供最近 7 天的每日成本和本月累计成本。projected 可以为空，由 CostOptimizer 按天数外推。
"""
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from fleetwatch.models.telemetry import CostReport, DailyCost

logger = logging.getLogger(__name__)


class CostSource(ABC):
    @abstractmethod
    async def fetch(self) -> CostReport:
        """返回成本报表；可以抛出异常，由 CostOptimizer 处理。"""


def synthetic_cost_report(rng: Optional[random.Random] = None) -> CostReport:
    rng = rng or random
    today = datetime.now(timezone.utc).date()
    daily = [
        DailyCost(date=(today - timedelta(days=i)).isoformat(), cost=round(rng.random() * 100 + 50, 2))
        for i in range(6, -1, -1)
    ]
    monthly = round(rng.random() * 2000 + 1000, 2)
    return CostReport(daily=daily, monthly=monthly, projected=round(monthly * 1.1, 2), synthetic=True)


class SyntheticCostSource(CostSource):
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng

    async def fetch(self) -> CostReport:
        return synthetic_cost_report(self.rng)
