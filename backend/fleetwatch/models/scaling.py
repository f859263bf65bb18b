"""
自动伸缩模型 (Autoscaling Models)

伸缩策略、服务状态、伸缩决策以及命令执行结果。
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator

UTC = timezone.utc


class ScalingPolicy(BaseModel):
    """伸缩策略 (Scaling Policy)

    约束：0 <= min_instances <= max_instances，scale_down_threshold < scale_up_threshold，
    增减步长 > 0，cooldown_period >= 0。last_scaling_action 只增不减。
    """
    id: str
    name: str
    enabled: bool = True
    target_service: str
    min_instances: int = Field(ge=0)
    max_instances: int = Field(ge=0)
    target_cpu_utilization: float = 70.0
    scale_up_threshold: float
    scale_down_threshold: float
    scale_up_increment: int = Field(default=1, gt=0)
    scale_down_increment: int = Field(default=1, gt=0)
    cooldown_period: int = Field(default=300, ge=0)  # 秒
    last_scaling_action: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> ScalingPolicy:
        if self.min_instances > self.max_instances:
            raise ValueError("min_instances must not exceed max_instances")
        if self.scale_down_threshold >= self.scale_up_threshold:
            raise ValueError("scale_down_threshold must be lower than scale_up_threshold")
        return self

    def clamp(self, count: int) -> int:
        return max(self.min_instances, min(self.max_instances, count))


class ServiceState(BaseModel):
    """单次评估中派生的服务状态，不持久化。"""
    service_id: str
    current_desired_count: int = Field(ge=0)


class DecisionKind(str, enum.Enum):
    NO_ACTION = "no_action"
    SCALE_TO = "scale_to"


class ScalingDecision(BaseModel):
    kind: DecisionKind
    new_count: Optional[int] = None
    reason: str = ""

    @classmethod
    def no_action(cls, reason: str = "") -> ScalingDecision:
        return cls(kind=DecisionKind.NO_ACTION, reason=reason)

    @classmethod
    def scale_to(cls, new_count: int, reason: str) -> ScalingDecision:
        return cls(kind=DecisionKind.SCALE_TO, new_count=new_count, reason=reason)

    @property
    def is_scale(self) -> bool:
        return self.kind == DecisionKind.SCALE_TO


class ScaleCommandResult(BaseModel):
    """命令执行器的返回值，失败通过 success=False 带内报告。"""
    success: bool
    message: str = ""
    previous_count: Optional[int] = None
    new_count: Optional[int] = None


class ScalingOutcome(BaseModel):
    """一条策略一次评估的最终结果。"""
    policy_id: str
    service_id: str
    decision: ScalingDecision
    success: bool = True
    executed: bool = False
    message: str = ""
    previous_count: Optional[int] = None
    new_count: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def summary(self) -> str:
        if not self.executed:
            status = "SKIPPED" if self.success else "FAILED"
            return f"{status} policy={self.policy_id}: {self.message or self.decision.reason}"
        status = "SCALED" if self.success else "FAILED"
        return f"{status} {self.service_id} {self.previous_count} -> {self.new_count}: {self.message}"


class ManualScaleAction(str, enum.Enum):
    SCALE_UP = "scale-up"
    SCALE_DOWN = "scale-down"
    SET = "set"
