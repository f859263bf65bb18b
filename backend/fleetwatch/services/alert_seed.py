"""
内置规则与策略种子数据模块 (Built-in Rules and Policies Seed Data Module)

功能描述 (Description):
    存储中尚无告警规则或伸缩策略时使用的默认集合。集合首次加载失败时，
    DocumentCollection 会调用这里的工厂函数并立即持久化结果。

内置告警规则 (Built-in Alert Rules):
    1. CPU使用率过高 - CPU 超过 85% 告警（warning）
    2. 内存使用率过高 - 内存超过 90% 告警（critical）
    3. 成本超限 - 本月成本超过 5000 告警（warning，需要接入成本数据）

内置伸缩策略 (Built-in Scaling Policies):
    1. 基于 CPU 的伸缩 - web-service 在 2~10 个实例之间伸缩
"""
from fleetwatch.models.alert import AlertRule
from fleetwatch.models.scaling import ScalingPolicy

# 内置告警规则定义列表 (Built-in Alert Rules Definition List)
# 顺序即评估顺序
BUILTIN_RULES = [
    {
        "id": "rule-1",
        "name": "High CPU Usage",
        "enabled": True,
        "metric": "cpu",
        "operator": "gt",
        "threshold": 85.0,
        "severity": "warning",
        "action": "notify",
    },
    {
        "id": "rule-2",
        "name": "High Memory Usage",
        "enabled": True,
        "metric": "memory",
        "operator": "gt",
        "threshold": 90.0,
        "severity": "critical",   # 内存耗尽会直接导致 OOM
        "action": "notify",
    },
    {
        "id": "rule-3",
        "name": "Cost Threshold",
        "enabled": True,
        "metric": "cost",         # 未接入成本数据时评估会跳过该规则
        "operator": "gt",
        "threshold": 5000.0,
        "severity": "warning",
        "action": "notify",
    },
]

# 内置伸缩策略定义列表 (Built-in Scaling Policies Definition List)
BUILTIN_POLICIES = [
    {
        "id": "policy-1",
        "name": "CPU-based scaling",
        "enabled": True,
        "target_service": "web-service",
        "min_instances": 2,
        "max_instances": 10,
        "target_cpu_utilization": 70.0,
        "scale_up_threshold": 80.0,
        "scale_down_threshold": 30.0,
        "scale_up_increment": 2,
        "scale_down_increment": 1,
        "cooldown_period": 300,  # 5 分钟冷却
    },
]


def default_rules() -> list[AlertRule]:
    return [AlertRule(**data) for data in BUILTIN_RULES]


def default_policies() -> list[ScalingPolicy]:
    return [ScalingPolicy(**data) for data in BUILTIN_POLICIES]
