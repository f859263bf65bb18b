"""
告警管理路由模块 (Alert Management Router)

功能说明：提供告警生命周期管理接口，支持告警查询、详情获取、创建、更新、确认和恢复
核心职责：
  - 查询告警列表（支持按状态过滤）和当前 active 告警
  - 直接创建告警（同一规则已有 active 告警时返回 409）
  - 通用更新、确认（ack）与恢复（resolve）
依赖关系：依赖 AlertEngine
API端点：GET /alerts, GET /alerts/active, GET /alerts/{id}, POST /alerts,
        PUT /alerts/{id}, POST /alerts/{id}/ack, POST /alerts/{id}/resolve
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from fleetwatch.core.deps import get_alert_engine
from fleetwatch.models.alert import Alert, AlertStatus
from fleetwatch.schemas.alert import AlertCreate, AlertUpdate
from fleetwatch.services.alert_engine import AlertEngine

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


@router.get("", response_model=dict)
async def list_alerts(
    status: Optional[AlertStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    engine: AlertEngine = Depends(get_alert_engine),
):
    """
    告警列表查询接口 (Alert List Query)

    按创建时间倒序返回告警（最新在前）。

    Args:
        status: 告警状态筛选（active/resolved）
        limit: 最多返回的条数
    Returns:
        dict: items 与 total（过滤后的总数）
    """
    alerts = await engine.get_alerts(status.value if status else None)
    return {
        "items": [a.model_dump(mode="json") for a in alerts[:limit]],
        "total": len(alerts),
    }


@router.get("/active", response_model=list[Alert])
async def list_active_alerts(engine: AlertEngine = Depends(get_alert_engine)):
    """当前所有 active 告警。"""
    return await engine.get_active_alerts()


@router.get("/{alert_id}", response_model=Alert)
async def get_alert(alert_id: str, engine: AlertEngine = Depends(get_alert_engine)):
    """
    单个告警详情查询接口 (Single Alert Detail Query)

    Raises:
        NotFoundError 404: 告警不存在
    """
    return await engine.get_alert(alert_id)


@router.post("", response_model=Alert, status_code=201)
async def create_alert(data: AlertCreate, engine: AlertEngine = Depends(get_alert_engine)):
    """
    创建告警接口 (Create Alert)

    Raises:
        ConflictError 409: 同一规则已存在 active 告警
    """
    return await engine.create_alert(data)


@router.put("/{alert_id}", response_model=Alert)
async def update_alert(alert_id: str, data: AlertUpdate, engine: AlertEngine = Depends(get_alert_engine)):
    """通用更新；把已恢复的告警重新置为 active 时同样受去重约束。"""
    return await engine.update_alert(alert_id, data)


@router.post("/{alert_id}/ack", response_model=Alert)
async def acknowledge_alert(alert_id: str, engine: AlertEngine = Depends(get_alert_engine)):
    """
    告警确认操作接口 (Alert Acknowledgment)

    只设置 acknowledged=True，不改变告警状态。
    """
    return await engine.acknowledge(alert_id)


@router.post("/{alert_id}/resolve", response_model=Alert)
async def resolve_alert(alert_id: str, engine: AlertEngine = Depends(get_alert_engine)):
    """将告警标记为 resolved；之后规则再次触发会创建新告警。"""
    return await engine.resolve(alert_id)
