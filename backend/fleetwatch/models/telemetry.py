"""
遥测数据模型 (Telemetry Models)

指标快照、资源清单、成本报表和成本优化建议。均为临时数据，不持久化。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

UTC = timezone.utc


class MetricSnapshot(BaseModel):
    """一次采样的不可变指标快照。synthetic=True 表示来自兜底数据。"""
    model_config = ConfigDict(frozen=True)

    cpu: float
    memory: float
    network_in: float
    network_out: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    synthetic: bool = False


class Instance(BaseModel):
    id: str
    type: str
    state: str
    launch_time: Optional[datetime] = None
    tags: dict[str, str] = Field(default_factory=dict)


class Cluster(BaseModel):
    name: str
    status: str
    running_tasks: int = 0
    pending_tasks: int = 0
    active_services: int = 0


class ResourceInventory(BaseModel):
    instances: list[Instance] = Field(default_factory=list)
    clusters: list[Cluster] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    synthetic: bool = False


class DailyCost(BaseModel):
    date: str  # YYYY-MM-DD
    cost: float
    currency: str = "USD"


class CostReport(BaseModel):
    daily: list[DailyCost] = Field(default_factory=list)
    monthly: float = 0.0
    projected: Optional[float] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    synthetic: bool = False


class Recommendation(BaseModel):
    type: str
    priority: str
    title: str
    description: str
    estimated_savings: float = 0.0
    resources: list[dict[str, Any]] = Field(default_factory=list)
