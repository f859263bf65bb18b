"""
告警规则管理路由 (Alert Rule Management Router)

提供告警规则的查询、创建和更新。创建和更新时 metric / operator 必须是已知取值。
"""
from typing import Optional

from fastapi import APIRouter, Depends

from fleetwatch.core.deps import get_alert_engine
from fleetwatch.models.alert import AlertRule
from fleetwatch.schemas.alert import AlertRuleCreate, AlertRuleUpdate
from fleetwatch.services.alert_engine import AlertEngine

router = APIRouter(prefix="/api/v1/alert-rules", tags=["alert-rules"])


@router.get("", response_model=list[AlertRule])
async def list_rules(enabled: Optional[bool] = None, engine: AlertEngine = Depends(get_alert_engine)):
    """按存储顺序列出告警规则，可按 enabled 过滤。"""
    return await engine.list_rules(enabled)


@router.get("/{rule_id}", response_model=AlertRule)
async def get_rule(rule_id: str, engine: AlertEngine = Depends(get_alert_engine)):
    return await engine.get_rule(rule_id)


@router.post("", response_model=AlertRule, status_code=201)
async def create_rule(data: AlertRuleCreate, engine: AlertEngine = Depends(get_alert_engine)):
    """
    创建告警规则 (Create Alert Rule)

    新规则追加到末尾，从下一轮评估开始生效。
    """
    return await engine.create_rule(data)


@router.put("/{rule_id}", response_model=AlertRule)
async def update_rule(rule_id: str, data: AlertRuleUpdate, engine: AlertEngine = Depends(get_alert_engine)):
    """部分更新告警规则，只修改请求中提供的字段。"""
    return await engine.update_rule(rule_id, data)
