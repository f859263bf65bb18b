"""
数据模型包 (Data Models Package)

告警规则、告警、伸缩策略以及遥测快照的 Pydantic 模型。
所有记录以 snake_case 字段名序列化到存储和 API。
"""
from fleetwatch.models.alert import (
    Alert,
    AlertEffect,
    AlertRule,
    AlertStatus,
    EffectKind,
    MetricName,
    RuleOperator,
    Severity,
)
from fleetwatch.models.scaling import (
    DecisionKind,
    ManualScaleAction,
    ScaleCommandResult,
    ScalingDecision,
    ScalingOutcome,
    ScalingPolicy,
    ServiceState,
)
from fleetwatch.models.telemetry import (
    Cluster,
    CostReport,
    DailyCost,
    Instance,
    MetricSnapshot,
    Recommendation,
    ResourceInventory,
)

__all__ = [
    "Alert",
    "AlertEffect",
    "AlertRule",
    "AlertStatus",
    "EffectKind",
    "MetricName",
    "RuleOperator",
    "Severity",
    "DecisionKind",
    "ManualScaleAction",
    "ScaleCommandResult",
    "ScalingDecision",
    "ScalingOutcome",
    "ScalingPolicy",
    "ServiceState",
    "Cluster",
    "CostReport",
    "DailyCost",
    "Instance",
    "MetricSnapshot",
    "Recommendation",
    "ResourceInventory",
]
