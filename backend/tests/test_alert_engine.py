"""告警引擎测试 — 规则评估、去重、生命周期与规则管理。"""
import asyncio

import pytest

from fleetwatch.core.exceptions import ConflictError, NotFoundError, ValidationError
from fleetwatch.models.alert import Alert, AlertRule, AlertStatus, EffectKind
from fleetwatch.services import alert_engine as alert_engine_module
from fleetwatch.services.alert_engine import AlertEngine, evaluate_rules
from fleetwatch.services.alert_seed import default_rules
from fleetwatch.storage.collection import DocumentCollection
from tests.conftest import LatentStore, make_snapshot


def _rule(**kwargs) -> AlertRule:
    defaults = dict(id="r-cpu", name="CPU High", metric="cpu", operator="gt", threshold=85.0, severity="warning")
    defaults.update(kwargs)
    return AlertRule(**defaults)


def _active_alert(rule_id: str, alert_id: str = "a-1") -> Alert:
    return Alert(id=alert_id, rule_id=rule_id, message="m", status=AlertStatus.ACTIVE)


# ─── evaluate_rules (pure) ────────────────────────────────────────

class TestEvaluateRules:
    def test_triggered_rule_creates_alert(self):
        effects = evaluate_rules(make_snapshot(cpu=90), [_rule()], [])
        assert len(effects) == 1
        assert effects[0].kind == EffectKind.CREATE_ALERT
        assert effects[0].value == 90

    def test_not_triggered(self):
        effects = evaluate_rules(make_snapshot(cpu=85), [_rule()], [])
        assert effects[0].kind == EffectKind.NOOP

    def test_existing_active_alert_deduplicates(self):
        effects = evaluate_rules(make_snapshot(cpu=95), [_rule()], [_active_alert("r-cpu")])
        assert effects[0].kind == EffectKind.NOOP
        assert "active" in effects[0].reason

    def test_resolved_alert_does_not_block(self):
        resolved = _active_alert("r-cpu").model_copy(update={"status": AlertStatus.RESOLVED})
        effects = evaluate_rules(make_snapshot(cpu=95), [_rule()], [resolved])
        assert effects[0].kind == EffectKind.CREATE_ALERT

    def test_disabled_rules_skipped(self):
        effects = evaluate_rules(make_snapshot(cpu=99), [_rule(enabled=False)], [])
        assert effects == []

    def test_unknown_metric_is_noop(self):
        effects = evaluate_rules(make_snapshot(), [_rule(metric="disk")], [])
        assert effects[0].kind == EffectKind.NOOP
        assert "unknown metric" in effects[0].reason

    def test_unknown_operator_is_noop(self):
        effects = evaluate_rules(make_snapshot(cpu=99), [_rule(operator="!=")], [])
        assert effects[0].kind == EffectKind.NOOP
        assert "unknown operator" in effects[0].reason

    @pytest.mark.parametrize("operator_name,cpu,fires", [
        ("lt", 10, True),
        ("<=", 85, True),
        (">=", 85, True),
        ("eq", 85, True),
        ("eq", 85.0001, False),
    ])
    def test_operators(self, operator_name, cpu, fires):
        effects = evaluate_rules(make_snapshot(cpu=cpu), [_rule(operator=operator_name)], [])
        assert (effects[0].kind == EffectKind.CREATE_ALERT) is fires

    def test_cost_rule_skipped_without_cost_feed(self):
        rule = _rule(id="r-cost", metric="cost", threshold=5000)
        assert evaluate_rules(make_snapshot(), [rule], [])[0].kind == EffectKind.NOOP
        assert evaluate_rules(make_snapshot(), [rule], [], cost=6000)[0].kind == EffectKind.CREATE_ALERT

    def test_network_metrics(self):
        rule = _rule(id="r-net", metric="network_in", threshold=5000)
        effects = evaluate_rules(make_snapshot(network_in=8000), [rule], [])
        assert effects[0].kind == EffectKind.CREATE_ALERT

    def test_failure_isolated_to_rule(self, monkeypatch):
        def boom(a, b):
            raise RuntimeError("boom")

        monkeypatch.setitem(alert_engine_module.OPERATORS, "gt", boom)
        rules = [_rule(id="bad"), _rule(id="good", operator="lt", threshold=95)]
        effects = evaluate_rules(make_snapshot(cpu=90), rules, [])
        assert [e.kind for e in effects] == [EffectKind.NOOP, EffectKind.CREATE_ALERT]
        assert effects[0].reason == "evaluation error"


# ─── check_metrics ────────────────────────────────────────────────

class TestCheckMetrics:
    async def test_default_rules_seeded(self, alert_engine):
        rules = await alert_engine.list_rules()
        assert [r.id for r in rules] == ["rule-1", "rule-2", "rule-3"]

    async def test_fires_once_and_deduplicates(self, alert_engine, clock):
        created = await alert_engine.check_metrics(make_snapshot(cpu=90))
        assert len(created) == 1
        first = created[0]
        assert first.rule_id == "rule-1"
        assert first.value == 90
        assert first.threshold == 85
        assert first.status == AlertStatus.ACTIVE

        clock.advance(5)
        assert await alert_engine.check_metrics(make_snapshot(cpu=92)) == []

        stored = await alert_engine.get_alerts()
        assert len(stored) == 1
        assert stored[0] == first

    async def test_resolve_then_retrigger_creates_new_alert(self, alert_engine):
        [first] = await alert_engine.check_metrics(make_snapshot(cpu=90))
        await alert_engine.resolve(first.id)

        [second] = await alert_engine.check_metrics(make_snapshot(cpu=91))
        assert second.id != first.id
        assert len(await alert_engine.get_alerts()) == 2
        assert [a.id for a in await alert_engine.get_active_alerts()] == [second.id]

    async def test_multiple_rules_fire_in_one_pass(self, alert_engine):
        created = await alert_engine.check_metrics(make_snapshot(cpu=90, memory=95), cost=6000)
        assert [a.rule_id for a in created] == ["rule-1", "rule-2", "rule-3"]
        assert created[1].severity == "critical"

    async def test_alerts_persisted(self, alert_engine, alerts):
        await alert_engine.check_metrics(make_snapshot(cpu=90))
        reloaded = await alerts.load()
        assert len(reloaded) == 1
        assert reloaded[0].rule_id == "rule-1"

    async def test_cap_evicts_oldest(self, rules, alerts, clock):
        engine = AlertEngine(rules, alerts, max_alerts=3, clock=clock)
        ids = []
        for i in range(5):
            clock.advance(1)
            alert = await engine.create_alert({"message": f"manual {i}"})
            ids.append(alert.id)

        stored = await engine.get_alerts()
        assert len(stored) == 3
        assert [a.id for a in stored] == list(reversed(ids[-3:]))


# ─── Alert lifecycle ──────────────────────────────────────────────

class TestAlertLifecycle:
    async def test_acknowledge_keeps_status(self, alert_engine):
        [alert] = await alert_engine.check_metrics(make_snapshot(cpu=90))
        acked = await alert_engine.acknowledge(alert.id)
        assert acked.acknowledged is True
        assert acked.status == AlertStatus.ACTIVE
        assert acked.updated_at is not None

    async def test_update_missing_alert(self, alert_engine):
        with pytest.raises(NotFoundError):
            await alert_engine.update_alert("nope", {"acknowledged": True})
        with pytest.raises(NotFoundError):
            await alert_engine.get_alert("nope")

    async def test_create_conflicts_with_active_alert(self, alert_engine):
        await alert_engine.check_metrics(make_snapshot(cpu=90))
        with pytest.raises(ConflictError):
            await alert_engine.create_alert({"rule_id": "rule-1", "message": "dup"})

    async def test_reactivating_conflicts(self, alert_engine, clock):
        [first] = await alert_engine.check_metrics(make_snapshot(cpu=90))
        await alert_engine.resolve(first.id)
        clock.advance(1)
        await alert_engine.check_metrics(make_snapshot(cpu=90))

        with pytest.raises(ConflictError):
            await alert_engine.update_alert(first.id, {"status": "active"})

    async def test_invalid_update_rejected(self, alert_engine):
        [alert] = await alert_engine.check_metrics(make_snapshot(cpu=90))
        with pytest.raises(ValidationError):
            await alert_engine.update_alert(alert.id, {"status": "exploded"})

    async def test_lookup_rule_weak_reference(self, alert_engine):
        assert (await alert_engine.lookup_rule("rule-2")).name == "High Memory Usage"
        assert await alert_engine.lookup_rule("deleted-rule") is None
        assert await alert_engine.lookup_rule(None) is None


# ─── Rule management ──────────────────────────────────────────────

class TestRuleManagement:
    async def test_create_rule_appended(self, alert_engine):
        rule = await alert_engine.create_rule({"name": "Net", "metric": "network_out", "threshold": 4000})
        assert rule.id.startswith("rule-")
        rules = await alert_engine.list_rules()
        assert rules[-1].id == rule.id

    async def test_update_rule(self, alert_engine):
        updated = await alert_engine.update_rule("rule-1", {"threshold": 70, "enabled": False})
        assert updated.threshold == 70
        assert updated.enabled is False
        assert [r.id for r in await alert_engine.list_rules(enabled=True)] == ["rule-2", "rule-3"]

    async def test_update_missing_rule(self, alert_engine):
        with pytest.raises(NotFoundError):
            await alert_engine.update_rule("rule-99", {"threshold": 1})

    async def test_invalid_rule_rejected(self, alert_engine):
        with pytest.raises(ValidationError):
            await alert_engine.create_rule({"name": "x", "metric": "cpu", "threshold": "high"})


# ─── Concurrency ──────────────────────────────────────────────────

def _latent_engine(store: LatentStore, clock) -> AlertEngine:
    return AlertEngine(
        DocumentCollection(store, "alert_rules", AlertRule, defaults=default_rules),
        DocumentCollection(store, "alerts", Alert),
        clock=clock,
    )


class TestConcurrency:
    async def test_first_read_does_not_drop_fired_alert(self, clock):
        store = LatentStore(slow_first_read="alerts")
        engine = _latent_engine(store, clock)
        reader = asyncio.create_task(engine.get_alerts())
        await asyncio.sleep(0)

        [created] = await engine.check_metrics(make_snapshot(cpu=90))
        await reader

        assert [a.id for a in await engine.get_alerts()] == [created.id]

    async def test_tick_and_api_serialized(self, clock):
        engine = _latent_engine(LatentStore(), clock)
        results = await asyncio.gather(
            engine.check_metrics(make_snapshot(cpu=90)),
            engine.check_metrics(make_snapshot(cpu=95)),
            engine.create_alert({"rule_id": "rule-1", "message": "operator raised"}),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert all(isinstance(e, ConflictError) for e in errors)
        active = [a for a in await engine.get_active_alerts() if a.rule_id == "rule-1"]
        assert len(active) == 1
