"""
自动伸缩引擎模块 (Autoscaling Engine Module)

根据伸缩策略和当前指标计算服务的期望实例数，并通过 CommandExecutor 下发伸缩命令。

Anti-flapping mechanisms:
    - Cooldown period: 上次伸缩后 cooldown_period 秒内不再伸缩，冷却优先于阈值判断
    - Hysteresis: scale_down_threshold < scale_up_threshold，两者之间不动作
    - Clamping: 结果始终限制在 [min_instances, max_instances]，与当前值相同则不下发命令

下发命令前先把 last_scaling_action 写回策略存储；命令失败不会回滚该时间戳，
也不会中断其他策略的评估。手动伸缩绕过策略和冷却，不修改任何策略。
"""
import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fleetwatch.core.exceptions import NotFoundError, ValidationError
from fleetwatch.models.scaling import (
    ManualScaleAction,
    ScaleCommandResult,
    ScalingDecision,
    ScalingOutcome,
    ScalingPolicy,
    ServiceState,
)
from fleetwatch.models.telemetry import MetricSnapshot
from fleetwatch.providers.command_executor import CommandExecutor
from fleetwatch.storage.collection import DocumentCollection

logger = logging.getLogger(__name__)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def in_cooldown(policy: ScalingPolicy, now: datetime) -> bool:
    if policy.last_scaling_action is None:
        return False
    elapsed = (_aware(now) - _aware(policy.last_scaling_action)).total_seconds()
    return elapsed < policy.cooldown_period


def evaluate(
    policy: ScalingPolicy,
    snapshot: MetricSnapshot,
    state: ServiceState,
    now: datetime,
) -> ScalingDecision:
    """
    评估单条策略（纯函数）。

    Args:
        policy: 伸缩策略
        snapshot: 当前指标快照，利用率取 snapshot.cpu
        state: 目标服务的当前期望实例数
        now: 评估时间

    Returns:
        ScalingDecision: NoAction 或 ScaleTo(new_count, reason)
    """
    if in_cooldown(policy, now):
        return ScalingDecision.no_action(f"In cooldown ({policy.cooldown_period}s since last scaling action)")

    utilization = snapshot.cpu
    current = state.current_desired_count

    if utilization >= policy.scale_up_threshold:
        candidate = current + policy.scale_up_increment
        reason = f"CPU {utilization:.1f}% >= {policy.scale_up_threshold:.0f}%"
    elif utilization <= policy.scale_down_threshold:
        candidate = current - policy.scale_down_increment
        reason = f"CPU {utilization:.1f}% <= {policy.scale_down_threshold:.0f}%"
    else:
        return ScalingDecision.no_action(f"CPU {utilization:.1f}% within thresholds")

    new_count = policy.clamp(candidate)
    if new_count == current:
        return ScalingDecision.no_action(f"{reason}, already at bound ({current})")
    return ScalingDecision.scale_to(new_count, f"{reason}: {current} -> {new_count}")


def _changes(data: Any) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    return dict(data)


class ScalingEngine:
    """自动伸缩引擎。

    同一服务上的伸缩命令（策略或手动）由每服务一把锁串行化；
    策略集合的读-改-写由 policies.lock 串行化。
    """

    def __init__(
        self,
        policies: DocumentCollection[ScalingPolicy],
        executor: CommandExecutor,
        command_timeout: float = 10,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.policies = policies
        self.executor = executor
        self.command_timeout = command_timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._service_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ── 执行器调用 (Executor Calls) ──

    async def _describe(self, service_id: str) -> Optional[ServiceState]:
        try:
            return await asyncio.wait_for(self.executor.describe_service(service_id), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            logger.warning("describe_service(%s) timed out after %ss", service_id, self.command_timeout)
        except Exception:
            logger.exception(f"describe_service({service_id}) failed")
        return None

    async def _set_desired_count(self, service_id: str, count: int) -> ScaleCommandResult:
        try:
            return await asyncio.wait_for(
                self.executor.set_desired_count(service_id, count), timeout=self.command_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("set_desired_count(%s, %d) timed out after %ss", service_id, count, self.command_timeout)
            return ScaleCommandResult(success=False, message=f"Command timed out after {self.command_timeout}s")
        except Exception as e:
            logger.exception(f"set_desired_count({service_id}, {count}) failed")
            return ScaleCommandResult(success=False, message=str(e))

    # ── 策略评估 (Policy Evaluation) ──

    async def _record_scaling_action(self, policy_id: str, now: datetime) -> bool:
        """把 last_scaling_action 写回存储；若存储中的策略已进入冷却则放弃，返回 False。"""
        async with self.policies.lock:
            policies = await self.policies.load()
            index = next((i for i, p in enumerate(policies) if p.id == policy_id), None)
            if index is None:
                raise NotFoundError("Policy not found", detail=policy_id)
            stored = policies[index]
            if in_cooldown(stored, now):
                return False
            previous = stored.last_scaling_action
            stamp = max(_aware(previous), _aware(now)) if previous else now
            policies[index] = stored.model_copy(update={"last_scaling_action": stamp})
            await self.policies.save(policies)
        return True

    async def apply_policy(
        self,
        policy: ScalingPolicy,
        snapshot: MetricSnapshot,
        now: Optional[datetime] = None,
    ) -> ScalingOutcome:
        """评估一条策略，必要时下发伸缩命令。"""
        now = now or self.clock()
        service_id = policy.target_service

        async with self._service_locks[service_id]:
            state = await self._describe(service_id)
            if state is None:
                return ScalingOutcome(
                    policy_id=policy.id,
                    service_id=service_id,
                    decision=ScalingDecision.no_action("service unavailable"),
                    success=False,
                    message=f"Service not found or unreachable: {service_id}",
                )

            decision = evaluate(policy, snapshot, state, now)
            if not decision.is_scale:
                return ScalingOutcome(
                    policy_id=policy.id,
                    service_id=service_id,
                    decision=decision,
                    message=decision.reason,
                    previous_count=state.current_desired_count,
                )

            if not await self._record_scaling_action(policy.id, now):
                decision = ScalingDecision.no_action("Cooldown started by a concurrent evaluation")
                return ScalingOutcome(
                    policy_id=policy.id,
                    service_id=service_id,
                    decision=decision,
                    message=decision.reason,
                    previous_count=state.current_desired_count,
                )

            logger.info(f"Policy {policy.id} scaling {service_id}: {decision.reason}")
            result = await self._set_desired_count(service_id, decision.new_count)

        if not result.success:
            logger.warning(f"Policy {policy.id} scale command failed: {result.message}")
        return ScalingOutcome(
            policy_id=policy.id,
            service_id=service_id,
            decision=decision,
            success=result.success,
            executed=True,
            message=result.message,
            previous_count=state.current_desired_count,
            new_count=decision.new_count,
        )

    async def check_policies(self, snapshot: MetricSnapshot) -> list[ScalingOutcome]:
        """按存储顺序评估所有已启用策略，单条策略失败不影响其他策略。"""
        policies = await self.policies.load()
        outcomes: list[ScalingOutcome] = []
        for policy in policies:
            if not policy.enabled:
                continue
            try:
                outcome = await self.apply_policy(policy, snapshot)
            except Exception as e:
                logger.exception(f"Error evaluating policy {policy.id}")
                outcome = ScalingOutcome(
                    policy_id=policy.id,
                    service_id=policy.target_service,
                    decision=ScalingDecision.no_action("evaluation error"),
                    success=False,
                    message=str(e),
                )
            logger.debug(outcome.summary())
            outcomes.append(outcome)
        return outcomes

    # ── 手动伸缩 (Manual Scaling) ──

    async def manual_scale(self, service_id: str, action: Any, count: Optional[int] = None) -> ScaleCommandResult:
        """
        手动伸缩，绕过策略、冷却和 min/max 限制。

        scale-up: current + count（默认 1）
        scale-down: max(0, current - count)（默认 1）
        set: count（必填）
        """
        try:
            action = ManualScaleAction(action)
        except ValueError:
            raise ValidationError(f"Unknown scaling action: {action}") from None
        if count is not None and count < 0:
            raise ValidationError("count must be >= 0")
        if action == ManualScaleAction.SET and count is None:
            raise ValidationError("count is required for action 'set'")

        async with self._service_locks[service_id]:
            state = await self._describe(service_id)
            if state is None:
                return ScaleCommandResult(success=False, message=f"Service not found: {service_id}")

            current = state.current_desired_count
            step = count if count is not None else 1
            if action == ManualScaleAction.SCALE_UP:
                new_count = current + step
            elif action == ManualScaleAction.SCALE_DOWN:
                new_count = max(0, current - step)
            else:
                new_count = count

            result = await self._set_desired_count(service_id, new_count)

        if not result.success:
            return result
        logger.info(f"Manual {action.value} of {service_id}: {current} -> {new_count}")
        return ScaleCommandResult(
            success=True,
            message=f"Service {service_id} scaled {action.value} to {new_count} instances",
            previous_count=current,
            new_count=new_count,
        )

    # ── 策略管理 (Policy Management) ──

    async def list_policies(self) -> list[ScalingPolicy]:
        return await self.policies.load()

    async def get_policy(self, policy_id: str) -> ScalingPolicy:
        policy = await self.policies.get(policy_id)
        if policy is None:
            raise NotFoundError("Policy not found", detail=policy_id)
        return policy

    async def create_policy(self, data: Any) -> ScalingPolicy:
        fields = _changes(data)
        fields.pop("last_scaling_action", None)
        async with self.policies.lock:
            policies = await self.policies.load()
            taken = {p.id for p in policies}
            base = f"policy-{int(self.clock().timestamp() * 1000)}"
            policy_id, n = base, 1
            while policy_id in taken:
                policy_id = f"{base}-{n}"
                n += 1
            try:
                policy = ScalingPolicy.model_validate({**fields, "id": policy_id, "created_at": self.clock()})
            except PydanticValidationError as e:
                raise ValidationError("Invalid scaling policy", detail=str(e)) from e
            policies.append(policy)
            await self.policies.save(policies)
        logger.info(f"Scaling policy created: {policy.id} ({policy.name})")
        return policy

    async def update_policy(self, policy_id: str, changes: Any) -> ScalingPolicy:
        fields = _changes(changes)
        for key in ("id", "created_at", "last_scaling_action"):
            fields.pop(key, None)
        async with self.policies.lock:
            policies = await self.policies.load()
            index = next((i for i, p in enumerate(policies) if p.id == policy_id), None)
            if index is None:
                raise NotFoundError("Policy not found", detail=policy_id)
            try:
                updated = ScalingPolicy.model_validate(
                    {**policies[index].model_dump(), **fields, "updated_at": self.clock()}
                )
            except PydanticValidationError as e:
                raise ValidationError("Invalid scaling policy", detail=str(e)) from e
            policies[index] = updated
            await self.policies.save(policies)
        return updated
