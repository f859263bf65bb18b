"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

Runtime 在 lifespan 中创建并挂到 app.state 上，路由通过依赖注入取用其中的组件。
"""
from fastapi import Request

from fleetwatch.runtime import Runtime
from fleetwatch.services.alert_engine import AlertEngine
from fleetwatch.services.scaling_engine import ScalingEngine


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_alert_engine(request: Request) -> AlertEngine:
    return get_runtime(request).alert_engine


def get_scaling_engine(request: Request) -> ScalingEngine:
    return get_runtime(request).scaling_engine
