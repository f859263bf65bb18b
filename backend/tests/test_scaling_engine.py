"""自动伸缩引擎测试 — 冷却、阈值、限幅、命令执行与手动伸缩。"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from fleetwatch.core.exceptions import NotFoundError, ValidationError
from fleetwatch.models.scaling import DecisionKind, ScaleCommandResult, ScalingPolicy, ServiceState
from fleetwatch.providers.command_executor import DryRunCommandExecutor
from fleetwatch.services.scaling_engine import ScalingEngine, evaluate
from tests.conftest import T0, make_snapshot


def _policy(**kwargs) -> ScalingPolicy:
    defaults = dict(
        id="policy-1",
        name="CPU-based scaling",
        target_service="web-service",
        min_instances=2,
        max_instances=10,
        scale_up_threshold=80,
        scale_down_threshold=30,
        scale_up_increment=2,
        scale_down_increment=1,
        cooldown_period=300,
    )
    defaults.update(kwargs)
    return ScalingPolicy(**defaults)


def _state(count: int) -> ServiceState:
    return ServiceState(service_id="web-service", current_desired_count=count)


# ─── evaluate (pure) ──────────────────────────────────────────────

class TestEvaluate:
    def test_scale_up(self):
        decision = evaluate(_policy(), make_snapshot(cpu=85), _state(4), T0)
        assert decision.kind == DecisionKind.SCALE_TO
        assert decision.new_count == 6

    def test_cooldown_blocks_then_expires(self):
        policy = _policy(last_scaling_action=T0)
        blocked = evaluate(policy, make_snapshot(cpu=85), _state(6), T0 + timedelta(seconds=100))
        assert blocked.kind == DecisionKind.NO_ACTION
        assert "cooldown" in blocked.reason.lower()

        allowed = evaluate(policy, make_snapshot(cpu=85), _state(6), T0 + timedelta(seconds=300))
        assert allowed.new_count == 8

    def test_cooldown_checked_before_thresholds(self):
        policy = _policy(last_scaling_action=T0)
        decision = evaluate(policy, make_snapshot(cpu=5), _state(6), T0 + timedelta(seconds=10))
        assert decision.kind == DecisionKind.NO_ACTION

    def test_scale_down(self):
        decision = evaluate(_policy(), make_snapshot(cpu=20), _state(5), T0)
        assert decision.new_count == 4

    def test_hysteresis_band(self):
        for cpu in (31, 50, 79):
            assert evaluate(_policy(), make_snapshot(cpu=cpu), _state(5), T0).kind == DecisionKind.NO_ACTION

    def test_clamped_to_max(self):
        assert evaluate(_policy(), make_snapshot(cpu=95), _state(9), T0).new_count == 10
        assert evaluate(_policy(), make_snapshot(cpu=95), _state(10), T0).kind == DecisionKind.NO_ACTION

    def test_clamped_to_min(self):
        assert evaluate(_policy(), make_snapshot(cpu=5), _state(2), T0).kind == DecisionKind.NO_ACTION
        assert evaluate(_policy(min_instances=3), make_snapshot(cpu=5), _state(5), T0).new_count == 4

    def test_out_of_bounds_service_pulled_into_range(self):
        assert evaluate(_policy(), make_snapshot(cpu=95), _state(0), T0).new_count == 2
        assert evaluate(_policy(), make_snapshot(cpu=5), _state(15), T0).new_count == 10

    def test_result_always_within_bounds(self):
        policy = _policy(min_instances=3, max_instances=7, scale_up_increment=4, scale_down_increment=3)
        for current in range(0, 12):
            for cpu in (0, 30, 50, 80, 100):
                decision = evaluate(policy, make_snapshot(cpu=cpu), _state(current), T0)
                if decision.is_scale:
                    assert 3 <= decision.new_count <= 7
                    assert decision.new_count != current


# ─── apply_policy / check_policies ────────────────────────────────

class TestApplyPolicy:
    async def test_scales_and_records_timestamp(self, scaling_engine, executor, clock):
        policy = await scaling_engine.get_policy("policy-1")
        outcome = await scaling_engine.apply_policy(policy, make_snapshot(cpu=85))

        assert outcome.executed and outcome.success
        assert (outcome.previous_count, outcome.new_count) == (4, 6)
        assert executor.services["web-service"] == 6
        stored = await scaling_engine.get_policy("policy-1")
        assert stored.last_scaling_action == clock.now

    async def test_second_pass_within_cooldown_is_noop(self, scaling_engine, executor, clock):
        await scaling_engine.check_policies(make_snapshot(cpu=85))
        clock.advance(100)
        [outcome] = await scaling_engine.check_policies(make_snapshot(cpu=99))

        assert outcome.executed is False
        assert outcome.decision.kind == DecisionKind.NO_ACTION
        assert executor.services["web-service"] == 6

    async def test_failed_command_keeps_timestamp(self, policies, clock):
        executor = DryRunCommandExecutor({"web-service": 4})
        executor.set_desired_count = AsyncMock(return_value=ScaleCommandResult(success=False, message="quota exceeded"))
        engine = ScalingEngine(policies, executor, clock=clock)

        [outcome] = await engine.check_policies(make_snapshot(cpu=85))
        assert outcome.executed is True
        assert outcome.success is False
        assert outcome.message == "quota exceeded"
        assert (await engine.get_policy("policy-1")).last_scaling_action == clock.now

    async def test_command_timeout_is_failed_outcome(self, policies, clock):
        executor = DryRunCommandExecutor({"web-service": 4})

        async def slow(service_id, count):
            await asyncio.sleep(1)

        executor.set_desired_count = slow
        engine = ScalingEngine(policies, executor, command_timeout=0.01, clock=clock)

        [outcome] = await engine.check_policies(make_snapshot(cpu=85))
        assert outcome.success is False
        assert "timed out" in outcome.message

    async def test_executor_exception_is_failed_outcome(self, policies, clock):
        executor = DryRunCommandExecutor({"web-service": 4})
        executor.set_desired_count = AsyncMock(side_effect=ConnectionError("refused"))
        engine = ScalingEngine(policies, executor, clock=clock)

        [outcome] = await engine.check_policies(make_snapshot(cpu=85))
        assert outcome.success is False
        assert "refused" in outcome.message

    async def test_unknown_service_fails_without_timestamp(self, scaling_engine):
        policy = await scaling_engine.create_policy(_policy(target_service="ghost").model_dump(exclude={"id"}))
        outcome = await scaling_engine.apply_policy(policy, make_snapshot(cpu=95))

        assert outcome.success is False
        assert outcome.executed is False
        assert (await scaling_engine.get_policy(policy.id)).last_scaling_action is None

    async def test_failure_isolated_per_policy(self, scaling_engine, executor, monkeypatch):
        await scaling_engine.create_policy(_policy(name="second", target_service="api").model_dump(exclude={"id"}))
        executor.services["api"] = 2

        original = scaling_engine.apply_policy

        async def flaky(policy, snapshot, now=None):
            if policy.id == "policy-1":
                raise RuntimeError("store exploded")
            return await original(policy, snapshot, now)

        monkeypatch.setattr(scaling_engine, "apply_policy", flaky)
        outcomes = await scaling_engine.check_policies(make_snapshot(cpu=90))

        assert [o.success for o in outcomes] == [False, True]
        assert executor.services["api"] == 4

    async def test_disabled_policies_skipped(self, scaling_engine, executor):
        await scaling_engine.update_policy("policy-1", {"enabled": False})
        assert await scaling_engine.check_policies(make_snapshot(cpu=99)) == []
        assert executor.services["web-service"] == 4

    async def test_concurrent_evaluations_scale_once(self, scaling_engine, executor):
        policy = await scaling_engine.get_policy("policy-1")
        outcomes = await asyncio.gather(
            scaling_engine.apply_policy(policy, make_snapshot(cpu=85)),
            scaling_engine.apply_policy(policy, make_snapshot(cpu=85)),
        )
        assert sum(o.executed for o in outcomes) == 1
        assert executor.services["web-service"] == 6

    async def test_timestamp_never_moves_backwards(self, scaling_engine, clock):
        await scaling_engine.check_policies(make_snapshot(cpu=85))
        recorded = (await scaling_engine.get_policy("policy-1")).last_scaling_action

        policy = await scaling_engine.get_policy("policy-1")
        await scaling_engine.apply_policy(policy, make_snapshot(cpu=99), now=clock.now - timedelta(hours=1))
        assert (await scaling_engine.get_policy("policy-1")).last_scaling_action == recorded


# ─── Manual scaling ───────────────────────────────────────────────

class TestManualScale:
    async def test_scale_up_default_step(self, scaling_engine, executor):
        result = await scaling_engine.manual_scale("web-service", "scale-up")
        assert result.success
        assert (result.previous_count, result.new_count) == (4, 5)
        assert executor.services["web-service"] == 5

    async def test_scale_down_floors_at_zero(self, scaling_engine, executor):
        result = await scaling_engine.manual_scale("web-service", "scale-down", 10)
        assert result.new_count == 0

    async def test_set_bypasses_bounds_and_cooldown(self, scaling_engine, executor):
        await scaling_engine.check_policies(make_snapshot(cpu=85))
        before = (await scaling_engine.get_policy("policy-1")).last_scaling_action

        result = await scaling_engine.manual_scale("web-service", "set", 25)
        assert result.success
        assert executor.services["web-service"] == 25
        assert (await scaling_engine.get_policy("policy-1")).last_scaling_action == before

    async def test_set_requires_count(self, scaling_engine):
        with pytest.raises(ValidationError):
            await scaling_engine.manual_scale("web-service", "set")

    async def test_unknown_action(self, scaling_engine):
        with pytest.raises(ValidationError):
            await scaling_engine.manual_scale("web-service", "explode", 1)

    async def test_negative_count(self, scaling_engine):
        with pytest.raises(ValidationError):
            await scaling_engine.manual_scale("web-service", "scale-up", -1)

    async def test_unknown_service(self, scaling_engine):
        result = await scaling_engine.manual_scale("ghost", "scale-up")
        assert result.success is False
        assert "ghost" in result.message


# ─── Policy management ────────────────────────────────────────────

class TestPolicyManagement:
    async def test_default_policy_seeded(self, scaling_engine):
        [policy] = await scaling_engine.list_policies()
        assert policy.id == "policy-1"
        assert (policy.min_instances, policy.max_instances, policy.cooldown_period) == (2, 10, 300)

    async def test_create_rejects_inverted_bounds(self, scaling_engine):
        with pytest.raises(ValidationError):
            await scaling_engine.create_policy(
                dict(name="bad", target_service="x", min_instances=5, max_instances=2,
                     scale_up_threshold=80, scale_down_threshold=30)
            )

    async def test_update_rejects_threshold_overlap(self, scaling_engine):
        with pytest.raises(ValidationError):
            await scaling_engine.update_policy("policy-1", {"scale_down_threshold": 90})

    async def test_update_missing(self, scaling_engine):
        with pytest.raises(NotFoundError):
            await scaling_engine.update_policy("policy-42", {"name": "x"})
        with pytest.raises(NotFoundError):
            await scaling_engine.get_policy("policy-42")

    async def test_update_cannot_touch_last_scaling_action(self, scaling_engine):
        updated = await scaling_engine.update_policy("policy-1", {"last_scaling_action": T0.isoformat(), "max_instances": 12})
        assert updated.last_scaling_action is None
        assert updated.max_instances == 12
