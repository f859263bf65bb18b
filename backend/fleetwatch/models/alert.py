"""
告警模型 (Alert Model)

定义告警规则和告警事件的数据结构。规则的 metric / operator 在存储层不做枚举约束，
这样历史数据中的畸形规则仍能加载，由告警引擎在评估时跳过。

Defines alert rules and alert events. A stored rule's metric / operator are plain
strings so malformed rules still load; the alert engine skips them at evaluation.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

UTC = timezone.utc


class MetricName(str, enum.Enum):
    """规则可引用的指标名称。"""
    CPU = "cpu"
    MEMORY = "memory"
    COST = "cost"
    NETWORK_IN = "network_in"
    NETWORK_OUT = "network_out"


class RuleOperator(str, enum.Enum):
    """比较运算符，存储中也接受 >、<、>=、<=、== 写法。"""
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"


class Severity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class AlertRule(BaseModel):
    """告警规则 (Alert Rule)"""
    id: str
    name: str
    enabled: bool = True
    metric: str  # MetricName 的取值；未知取值在评估时静默跳过
    operator: str = "gt"  # RuleOperator 的取值或其符号写法
    threshold: float
    severity: str = Severity.WARNING.value
    action: str = "notify"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: Optional[datetime] = None


class Alert(BaseModel):
    """告警事件 (Alert Event)

    rule_id 只是弱引用，规则可能已被修改或不存在，需通过 AlertEngine.lookup_rule 查询。
    """
    id: str
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    severity: str = Severity.WARNING.value
    message: str = ""
    metric: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE


class EffectKind(str, enum.Enum):
    CREATE_ALERT = "create_alert"
    NOOP = "noop"


class AlertEffect(BaseModel):
    """单条规则的评估结果：创建告警或无操作。"""
    kind: EffectKind
    rule_id: str
    value: Optional[float] = None
    reason: str = ""

    @classmethod
    def create(cls, rule_id: str, value: float) -> AlertEffect:
        return cls(kind=EffectKind.CREATE_ALERT, rule_id=rule_id, value=value)

    @classmethod
    def noop(cls, rule_id: str, reason: str = "") -> AlertEffect:
        return cls(kind=EffectKind.NOOP, rule_id=rule_id, reason=reason)
