"""FleetWatch - 告警与自动伸缩控制回路 (Alerting and autoscaling control loop)."""

__version__ = "0.1.0"
