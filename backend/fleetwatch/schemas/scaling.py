from pydantic import BaseModel, Field

from fleetwatch.models.scaling import ManualScaleAction


class ScalingPolicyCreate(BaseModel):
    name: str
    enabled: bool = True
    target_service: str
    min_instances: int = Field(ge=0)
    max_instances: int = Field(ge=0)
    target_cpu_utilization: float = 70.0
    scale_up_threshold: float
    scale_down_threshold: float
    scale_up_increment: int = Field(default=1, gt=0)
    scale_down_increment: int = Field(default=1, gt=0)
    cooldown_period: int = Field(default=300, ge=0)


class ScalingPolicyUpdate(BaseModel):
    name: str | None = None
    enabled: bool | None = None
    target_service: str | None = None
    min_instances: int | None = None
    max_instances: int | None = None
    target_cpu_utilization: float | None = None
    scale_up_threshold: float | None = None
    scale_down_threshold: float | None = None
    scale_up_increment: int | None = None
    scale_down_increment: int | None = None
    cooldown_period: int | None = None


class ManualScaleRequest(BaseModel):
    service_id: str
    action: ManualScaleAction
    count: int | None = Field(default=None, ge=0)
