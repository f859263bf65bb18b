from pydantic import BaseModel

from fleetwatch.models.alert import AlertStatus, MetricName, RuleOperator, Severity


# ── AlertRule ──

class AlertRuleCreate(BaseModel):
    name: str
    enabled: bool = True
    metric: MetricName
    operator: RuleOperator = RuleOperator.GT
    threshold: float
    severity: Severity = Severity.WARNING
    action: str = "notify"


class AlertRuleUpdate(BaseModel):
    name: str | None = None
    enabled: bool | None = None
    metric: MetricName | None = None
    operator: RuleOperator | None = None
    threshold: float | None = None
    severity: Severity | None = None
    action: str | None = None


# ── Alert ──

class AlertCreate(BaseModel):
    rule_id: str | None = None
    rule_name: str | None = None
    severity: Severity = Severity.WARNING
    message: str
    metric: str | None = None
    value: float | None = None
    threshold: float | None = None
    status: AlertStatus = AlertStatus.ACTIVE


class AlertUpdate(BaseModel):
    severity: Severity | None = None
    message: str | None = None
    status: AlertStatus | None = None
    acknowledged: bool | None = None
