"""
告警引擎模块 (Alert Engine Module)

将最新的指标快照与告警规则进行比对，触发告警，并保证同一规则同一时间最多只有一条
active 告警（去重）。重复触发既不会创建新告警，也不会刷新已有告警的数值；
告警被 resolve 之后再次触发会创建一条新的告警。

Compares the latest metric snapshot with the alert rules and raises alerts, keeping
at most one active alert per rule. Resolution / acknowledgement are explicit
operations. Every create / update persists the whole alert collection.

评估规则 (Evaluation):
    - 按存储顺序遍历已启用的规则
    - metric=cost 只有在接入成本数据时才评估，否则跳过
    - 未知的 metric / operator 视为不匹配并记录警告，不中断本轮评估
    - eq 使用精确相等比较，不做容差处理
"""
import logging
import operator as op
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fleetwatch.core.exceptions import ConflictError, NotFoundError, ValidationError
from fleetwatch.models.alert import Alert, AlertEffect, AlertRule, AlertStatus, EffectKind
from fleetwatch.models.telemetry import MetricSnapshot
from fleetwatch.storage.collection import DocumentCollection

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

MAX_ALERTS = 1000  # 保留的最大告警数

# 支持的比较运算符映射（命名写法与符号写法）
OPERATORS = {
    "gt": op.gt,
    ">": op.gt,
    "lt": op.lt,
    "<": op.lt,
    "gte": op.ge,
    ">=": op.ge,
    "lte": op.le,
    "<=": op.le,
    "eq": op.eq,
    "==": op.eq,
}

# 可从快照中直接读取的指标字段
METRIC_FIELDS = {
    "cpu": "cpu",
    "memory": "memory",
    "network_in": "network_in",
    "network_out": "network_out",
}


def _resolve_value(rule: AlertRule, snapshot: MetricSnapshot, cost: Optional[float]) -> tuple[Optional[float], str]:
    """按规则的 metric 取值；返回 (value, 跳过原因)。"""
    if rule.metric == "cost":
        if cost is None:
            return None, "cost feed not wired"
        return float(cost), ""
    field = METRIC_FIELDS.get(rule.metric)
    if field is None:
        logger.warning(f"Rule {rule.id} references unknown metric {rule.metric!r}, skipped")
        return None, f"unknown metric {rule.metric!r}"
    return float(getattr(snapshot, field)), ""


def _evaluate_rule(
    rule: AlertRule,
    snapshot: MetricSnapshot,
    active_rule_ids: set[str],
    cost: Optional[float],
) -> AlertEffect:
    value, skip_reason = _resolve_value(rule, snapshot, cost)
    if value is None:
        return AlertEffect.noop(rule.id, skip_reason)

    cmp_fn = OPERATORS.get(rule.operator)
    if cmp_fn is None:
        logger.warning(f"Rule {rule.id} has unknown operator {rule.operator!r}, skipped")
        return AlertEffect.noop(rule.id, f"unknown operator {rule.operator!r}")

    if not cmp_fn(value, rule.threshold):
        return AlertEffect.noop(rule.id, "not triggered")

    if rule.id in active_rule_ids:
        return AlertEffect.noop(rule.id, "active alert exists")

    active_rule_ids.add(rule.id)
    return AlertEffect.create(rule.id, value)


def evaluate_rules(
    snapshot: MetricSnapshot,
    rules: list[AlertRule],
    existing_alerts: list[Alert],
    cost: Optional[float] = None,
) -> list[AlertEffect]:
    """评估所有已启用规则，返回每条规则的评估结果（纯函数，无副作用）。

    单条规则评估出错只影响该规则本身。
    """
    active_rule_ids = {a.rule_id for a in existing_alerts if a.is_active and a.rule_id}
    effects: list[AlertEffect] = []
    for rule in rules:
        if not rule.enabled:
            continue
        try:
            effects.append(_evaluate_rule(rule, snapshot, active_rule_ids, cost))
        except Exception:
            logger.exception(f"Error evaluating rule {rule.id}")
            effects.append(AlertEffect.noop(rule.id, "evaluation error"))
    return effects


def _changes(data: Any) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    return dict(data)


def _validate(model: type[ModelT], data: dict, what: str) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {what}", detail=str(e)) from e


class AlertEngine:
    """告警引擎：规则评估、告警创建与生命周期管理。

    自身不持有持久状态；每次操作都在 alerts 集合锁内完成 读取 → 内存修改 → 整体写回。
    """

    def __init__(
        self,
        rules: DocumentCollection[AlertRule],
        alerts: DocumentCollection[Alert],
        max_alerts: int = MAX_ALERTS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.rules = rules
        self.alerts = alerts
        self.max_alerts = max_alerts
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ── 评估 (Evaluation) ──

    async def check_metrics(self, snapshot: MetricSnapshot, cost: Optional[float] = None) -> list[Alert]:
        """用快照评估全部规则，返回本轮新创建的告警。"""
        rules = await self.rules.load()
        rules_by_id = {rule.id: rule for rule in rules}
        created: list[Alert] = []

        async with self.alerts.lock:
            alerts = await self.alerts.load()
            for effect in evaluate_rules(snapshot, rules, alerts, cost):
                if effect.kind != EffectKind.CREATE_ALERT:
                    continue
                rule = rules_by_id[effect.rule_id]
                alert = Alert(
                    id=self._new_alert_id(alerts, rule.id),
                    rule_id=rule.id,
                    rule_name=rule.name,
                    severity=rule.severity,
                    message=f"{rule.name}: {rule.metric} is {effect.value} (threshold: {rule.threshold})",
                    metric=rule.metric,
                    value=effect.value,
                    threshold=rule.threshold,
                    created_at=self.clock(),
                )
                alerts = self._insert(alerts, alert)
                await self.alerts.save(alerts)
                logger.info(f"Alert fired: {alert.message}")
                created.append(alert)
        return created

    # ── 告警生命周期 (Alert Lifecycle) ──

    def _new_alert_id(self, alerts: list[Alert], rule_id: Optional[str]) -> str:
        millis = int(self.clock().timestamp() * 1000)
        base = f"alert-{rule_id}-{millis}" if rule_id else f"alert-{millis}"
        taken = {a.id for a in alerts}
        alert_id, n = base, 1
        while alert_id in taken:
            alert_id = f"{base}-{n}"
            n += 1
        return alert_id

    def _insert(self, alerts: list[Alert], alert: Alert) -> list[Alert]:
        """新告警放在最前面，超过上限时淘汰最旧的告警。"""
        alerts.insert(0, alert)
        if len(alerts) > self.max_alerts:
            evicted = len(alerts) - self.max_alerts
            del alerts[self.max_alerts:]
            logger.debug(f"Evicted {evicted} oldest alerts")
        return alerts

    @staticmethod
    def _has_other_active(alerts: list[Alert], rule_id: Optional[str], exclude_id: Optional[str] = None) -> bool:
        if not rule_id:
            return False
        return any(a.rule_id == rule_id and a.is_active and a.id != exclude_id for a in alerts)

    async def create_alert(self, data: Any) -> Alert:
        """直接创建告警（外部 API 调用）。同一规则已有 active 告警时拒绝创建。"""
        fields = _changes(data)
        async with self.alerts.lock:
            alerts = await self.alerts.load()
            status = fields.get("status", AlertStatus.ACTIVE.value)
            if status == AlertStatus.ACTIVE.value and self._has_other_active(alerts, fields.get("rule_id")):
                raise ConflictError(f"Rule {fields['rule_id']} already has an active alert")
            alert = _validate(
                Alert,
                {
                    **fields,
                    "id": self._new_alert_id(alerts, fields.get("rule_id")),
                    "acknowledged": False,
                    "created_at": self.clock(),
                },
                "alert",
            )
            alerts = self._insert(alerts, alert)
            await self.alerts.save(alerts)
        logger.info(f"Alert created: {alert.id}")
        return alert

    async def update_alert(self, alert_id: str, changes: Any) -> Alert:
        """原地更新告警，告警不存在时抛出 NotFoundError。"""
        fields = _changes(changes)
        fields.pop("id", None)
        fields.pop("created_at", None)
        async with self.alerts.lock:
            alerts = await self.alerts.load()
            index = next((i for i, a in enumerate(alerts) if a.id == alert_id), None)
            if index is None:
                raise NotFoundError("Alert not found", detail=alert_id)

            current = alerts[index]
            reactivating = fields.get("status") == AlertStatus.ACTIVE.value and not current.is_active
            if reactivating and self._has_other_active(alerts, current.rule_id, exclude_id=alert_id):
                raise ConflictError(f"Rule {current.rule_id} already has an active alert")

            updated = _validate(Alert, {**current.model_dump(), **fields, "updated_at": self.clock()}, "alert")
            alerts[index] = updated
            await self.alerts.save(alerts)
        return updated

    async def acknowledge(self, alert_id: str) -> Alert:
        return await self.update_alert(alert_id, {"acknowledged": True})

    async def resolve(self, alert_id: str) -> Alert:
        alert = await self.update_alert(alert_id, {"status": AlertStatus.RESOLVED.value})
        logger.info(f"Alert resolved: {alert.id}")
        return alert

    async def get_alerts(self, status: Optional[str] = None) -> list[Alert]:
        alerts = await self.alerts.load()
        if status:
            alerts = [a for a in alerts if a.status == status]
        return alerts

    async def get_active_alerts(self) -> list[Alert]:
        return await self.get_alerts(AlertStatus.ACTIVE.value)

    async def get_alert(self, alert_id: str) -> Alert:
        alert = await self.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert not found", detail=alert_id)
        return alert

    async def lookup_rule(self, rule_id: Optional[str]) -> Optional[AlertRule]:
        """按弱引用查找规则，规则可能已不存在。"""
        if not rule_id:
            return None
        return await self.rules.get(rule_id)

    # ── 规则管理 (Rule Management) ──

    async def list_rules(self, enabled: Optional[bool] = None) -> list[AlertRule]:
        rules = await self.rules.load()
        if enabled is not None:
            rules = [r for r in rules if r.enabled == enabled]
        return rules

    async def get_rule(self, rule_id: str) -> AlertRule:
        rule = await self.rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Alert rule not found", detail=rule_id)
        return rule

    async def create_rule(self, data: Any) -> AlertRule:
        fields = _changes(data)
        async with self.rules.lock:
            rules = await self.rules.load()
            taken = {r.id for r in rules}
            rule_id, n = f"rule-{int(self.clock().timestamp() * 1000)}", 1
            while rule_id in taken:
                rule_id = f"rule-{int(self.clock().timestamp() * 1000)}-{n}"
                n += 1
            rule = _validate(AlertRule, {**fields, "id": rule_id, "created_at": self.clock()}, "alert rule")
            rules.append(rule)
            await self.rules.save(rules)
        logger.info(f"Alert rule created: {rule.id} ({rule.name})")
        return rule

    async def update_rule(self, rule_id: str, changes: Any) -> AlertRule:
        fields = _changes(changes)
        fields.pop("id", None)
        fields.pop("created_at", None)
        async with self.rules.lock:
            rules = await self.rules.load()
            index = next((i for i, r in enumerate(rules) if r.id == rule_id), None)
            if index is None:
                raise NotFoundError("Alert rule not found", detail=rule_id)
            updated = _validate(
                AlertRule, {**rules[index].model_dump(), **fields, "updated_at": self.clock()}, "alert rule"
            )
            rules[index] = updated
            await self.rules.save(rules)
        return updated
