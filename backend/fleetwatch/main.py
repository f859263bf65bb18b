"""
FleetWatch 应用入口模块 (FleetWatch Application Entry Module)

负责 FastAPI 应用的完整生命周期管理：启动时装配 Runtime 并启动周期任务，
关闭时等待进行中的任务结束并释放外部连接。

主要功能 (Main Features):
- 告警规则评估与告警去重 (Alert rule evaluation and deduplication)
- 基于策略的自动伸缩与手动伸缩 (Policy-driven and manual autoscaling)
- 成本报表与优化建议 (Cost reports and optimization recommendations)
- WebSocket 实时事件推送 (Real-time event push via WebSocket)
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fleetwatch import __version__
from fleetwatch.core.config import Settings, settings as app_settings
from fleetwatch.core.exceptions import register_exception_handlers
from fleetwatch.routers import alert_rules, alerts, scaling, telemetry, ws
from fleetwatch.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    runtime: Optional[Runtime] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """
    创建 FastAPI 应用 (Create FastAPI Application)

    Args:
        settings: 配置，默认使用全局 settings
        runtime: 预先装配好的 Runtime（测试使用），为空时在 lifespan 中按配置装配
        start_scheduler: 是否在启动时运行周期任务
    """
    settings = settings or app_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 启动阶段 (Startup Phase)
        rt = app.state.runtime if getattr(app.state, "runtime", None) else await build_runtime(settings)
        app.state.runtime = rt

        # 预加载集合，首次运行时写入默认规则和策略
        await rt.alert_engine.list_rules()
        await rt.scaling_engine.list_policies()
        await rt.cost_optimizer.refresh()

        if start_scheduler:
            rt.scheduler.start()

        yield

        # 关闭阶段：等待进行中的任务结束 (Shutdown Phase)
        await rt.close()

    app = FastAPI(
        title="FleetWatch",
        description="Telemetry-driven alerting and autoscaling control loop",
        version=__version__,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    # 注册全局异常处理器 (Register global exception handlers)
    register_exception_handlers(app)

    is_production = settings.environment.lower() == "production"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not is_production else [],
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(alerts.router)  # 告警 (Alerts)
    app.include_router(alert_rules.router)  # 告警规则 (Alert rules)
    app.include_router(scaling.router)  # 自动伸缩 (Autoscaling)
    app.include_router(telemetry.router)  # 指标 / 资源 / 成本 / 健康检查
    app.include_router(ws.router)  # 事件推送 (Event push)
    return app


app = create_app()
