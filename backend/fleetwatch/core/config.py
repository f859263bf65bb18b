"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 FleetWatch 的所有配置项，支持从 .env 文件和环境变量读取。
涵盖存储后端、指标来源、伸缩命令执行器、周期任务间隔与超时等配置。

Uses Pydantic Settings to manage all configuration items, supporting reading from
.env files and environment variables. Covers the store backend, metric source,
scale command executor, and the intervals / timeouts of the periodic tasks.
"""
import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（前缀 FLEETWATCH_，不区分大小写），支持 .env 文件加载。
    每个周期任务的超时预算必须小于其执行间隔。

    Field names map to FLEETWATCH_-prefixed environment variables (case insensitive).
    Every periodic task's timeout budget must be shorter than its interval.
    """

    environment: str = "development"  # 运行环境 (Runtime Environment)
    log_level: str = "INFO"  # 日志级别 (Log Level)

    # 存储配置 (Store Configuration)
    store_backend: str = "file"  # memory / file / redis
    data_dir: str = "data"  # JSON 文件存储目录 (JSON file store directory)
    redis_host: str = "localhost"  # Redis 主机地址 (Redis Host)
    redis_port: int = 6379  # Redis 端口号 (Redis Port)
    redis_key_prefix: str = "fleetwatch"  # Redis 键前缀 (Redis Key Prefix)

    # 外部协作者配置 (External Collaborator Configuration)
    metric_source: str = "synthetic"  # psutil / synthetic
    executor: str = "dry_run"  # dry_run / http
    fleet_api_url: str = "http://localhost:8080"  # 集群管理 API 地址 (Fleet Manager API URL)
    fleet_api_token: str = ""  # 集群管理 API 令牌 (Fleet Manager API Token)
    dry_run_services: dict[str, int] = {"web-service": 2}  # 试运行模式的初始服务容量

    # 周期任务配置（秒） (Periodic Task Configuration, seconds)
    broadcast_interval: float = 5
    broadcast_timeout: float = 4
    scaling_interval: float = 60
    scaling_timeout: float = 30
    cost_interval: float = 3600
    cost_timeout: float = 120

    # 外部调用超时（秒） (External Call Timeouts, seconds)
    metric_fetch_timeout: float = 3
    resource_fetch_timeout: float = 3
    cost_fetch_timeout: float = 10
    command_timeout: float = 10

    # 告警配置 (Alert Configuration)
    max_alerts: int = 1000  # 保留的最大告警数 (Maximum Retained Alerts)
    alert_on_cost: bool = True  # 是否将成本数据接入告警规则 (Wire cost feed into alert rules)

    # 成本优化配置 (Cost Optimization Configuration)
    idle_cluster_monthly_cost: float = 50.0
    rightsizing_cpu_threshold: float = 20.0
    rightsizing_savings_ratio: float = 0.25
    reserved_instance_discount: float = 0.3

    @model_validator(mode="after")
    def _check_budgets(self) -> "Settings":
        """校验每个周期任务的超时预算小于执行间隔。"""
        for name in ("broadcast", "scaling", "cost"):
            interval = getattr(self, f"{name}_interval")
            timeout = getattr(self, f"{name}_timeout")
            if timeout >= interval:
                raise ValueError(
                    f"{name}_timeout ({timeout}s) must be shorter than {name}_interval ({interval}s)"
                )
        return self

    @property
    def redis_url(self) -> str:
        """构造 Redis 连接 URL (Build Redis Connection URL)"""
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    model_config = {"env_prefix": "FLEETWATCH_", "env_file": ".env", "env_file_encoding": "utf-8"}


# 全局配置实例 (Global Configuration Instance)
settings = Settings()
