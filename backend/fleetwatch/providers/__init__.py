"""
外部协作者 (External Collaborators)

指标、资源、成本来源以及伸缩命令执行器的接口和参考实现。
核心引擎只依赖这里的抽象接口。
"""
from fleetwatch.providers.command_executor import CommandExecutor, DryRunCommandExecutor, HttpCommandExecutor
from fleetwatch.providers.cost_source import CostSource, SyntheticCostSource
from fleetwatch.providers.metric_source import (
    MetricSource,
    PsutilMetricSource,
    SyntheticMetricSource,
    fetch_snapshot,
    synthetic_snapshot,
)
from fleetwatch.providers.resource_source import ResourceSource, SyntheticResourceSource, fetch_inventory

__all__ = [
    "CommandExecutor",
    "DryRunCommandExecutor",
    "HttpCommandExecutor",
    "CostSource",
    "SyntheticCostSource",
    "MetricSource",
    "PsutilMetricSource",
    "SyntheticMetricSource",
    "fetch_snapshot",
    "synthetic_snapshot",
    "ResourceSource",
    "SyntheticResourceSource",
    "fetch_inventory",
]
