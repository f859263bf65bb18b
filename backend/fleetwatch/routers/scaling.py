"""
自动伸缩路由模块 (Autoscaling Router)

功能说明：伸缩策略管理、手动伸缩以及按需触发一次策略评估
API端点：
  - GET/POST /scaling/policies, GET/PUT /scaling/policies/{id}
  - POST /scaling/manual
  - POST /scaling/check
"""
from fastapi import APIRouter, Depends

from fleetwatch.core.deps import get_runtime, get_scaling_engine
from fleetwatch.models.scaling import ScaleCommandResult, ScalingPolicy
from fleetwatch.runtime import Runtime
from fleetwatch.schemas.scaling import ManualScaleRequest, ScalingPolicyCreate, ScalingPolicyUpdate
from fleetwatch.services.scaling_engine import ScalingEngine

router = APIRouter(prefix="/api/v1/scaling", tags=["scaling"])


@router.get("/policies", response_model=list[ScalingPolicy])
async def list_policies(engine: ScalingEngine = Depends(get_scaling_engine)):
    return await engine.list_policies()


@router.get("/policies/{policy_id}", response_model=ScalingPolicy)
async def get_policy(policy_id: str, engine: ScalingEngine = Depends(get_scaling_engine)):
    return await engine.get_policy(policy_id)


@router.post("/policies", response_model=ScalingPolicy, status_code=201)
async def create_policy(data: ScalingPolicyCreate, engine: ScalingEngine = Depends(get_scaling_engine)):
    """
    创建伸缩策略 (Create Scaling Policy)

    Raises:
        ValidationError 422: min_instances > max_instances 或 scale_down_threshold >= scale_up_threshold
    """
    return await engine.create_policy(data)


@router.put("/policies/{policy_id}", response_model=ScalingPolicy)
async def update_policy(
    policy_id: str,
    data: ScalingPolicyUpdate,
    engine: ScalingEngine = Depends(get_scaling_engine),
):
    """部分更新伸缩策略；last_scaling_action 只能由伸缩引擎修改。"""
    return await engine.update_policy(policy_id, data)


@router.post("/manual", response_model=ScaleCommandResult)
async def manual_scale(data: ManualScaleRequest, engine: ScalingEngine = Depends(get_scaling_engine)):
    """
    手动伸缩接口 (Manual Scaling)

    绕过策略、冷却和 min/max 限制，直接调用命令执行器。

    Args:
        data.service_id: 目标服务
        data.action: scale-up / scale-down / set
        data.count: 步长（scale-up/scale-down 默认 1）或目标实例数（set 必填）
    Returns:
        ScaleCommandResult: success、message、previous_count、new_count
    """
    return await engine.manual_scale(data.service_id, data.action, data.count)


@router.post("/check", response_model=dict)
async def check_policies(rt: Runtime = Depends(get_runtime)):
    """按需执行一次伸缩任务，与周期任务共用同一执行通道，不会与其重叠。"""
    outcomes = await rt.scheduler.run_once("scaling")
    if outcomes is None:
        return {"executed": False, "outcomes": []}
    return {"executed": True, "outcomes": [o.model_dump(mode="json") for o in outcomes]}
