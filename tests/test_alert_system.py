"""Tests for alert routing, throttling and escalation."""

import asyncio
import time

import pytest

from releasegate.notifications import (
    Alert,
    AlertOutcome,
    AlertRule,
    AlertSeverity,
    AlertSystem,
    EscalationRule,
    default_rules,
)


def _rule(channels, throttle_s=0.0, escalation=None, condition=None, rule_id="rule") -> AlertRule:
    return AlertRule(
        id=rule_id,
        name=rule_id.title(),
        condition=condition or (lambda alert: True),
        channels=list(channels),
        throttle_s=throttle_s,
        escalation=escalation,
    )


class TestRouting:
    """Rule matching and default routing."""

    def test_default_routing_by_severity(self, recording_channel):
        """Alerts matching no rule go to the severity's default channels."""
        console = recording_channel("console")
        storage = recording_channel("storage")
        system = AlertSystem(channels={"console": console, "storage": storage}, rules=[])

        entry = asyncio.run(system.trigger_alert(Alert("odd_event", AlertSeverity.MEDIUM, "hm")))

        assert entry.outcome == AlertOutcome.DEFAULT_ROUTED
        assert entry.channels == ["console", "storage"]
        assert entry.delivered == ["console", "storage"]
        assert console.types == ["odd_event"]
        assert storage.types == ["odd_event"]

    def test_low_severity_defaults_to_console(self, recording_channel):
        """Low alerts with no rule only reach the console."""
        console = recording_channel("console")
        storage = recording_channel("storage")
        system = AlertSystem(channels={"console": console, "storage": storage}, rules=[])

        asyncio.run(system.trigger_alert(Alert("odd_event", AlertSeverity.LOW, "fyi")))

        assert console.types == ["odd_event"]
        assert storage.sent == []

    def test_channel_failure_isolated(self, recording_channel):
        """One failing channel does not stop the others."""
        broken = recording_channel("broken", fail=True)
        working = recording_channel("working")
        system = AlertSystem(
            channels={"broken": broken, "working": working},
            rules=[_rule(["broken", "working"])],
        )

        entry = asyncio.run(system.trigger_alert(Alert("x", AlertSeverity.MEDIUM, "m")))

        assert entry.success is True
        assert entry.outcome == AlertOutcome.DISPATCHED
        assert entry.delivered == ["working"]
        assert working.types == ["x"]

    def test_unavailable_and_unknown_channels_skipped(self, recording_channel):
        """Unavailable or unregistered channels are not delivered to."""
        offline = recording_channel("offline", available=False)
        system = AlertSystem(channels={"offline": offline}, rules=[_rule(["offline", "missing"])])

        entry = asyncio.run(system.trigger_alert(Alert("x", AlertSeverity.MEDIUM, "m")))

        assert entry.delivered == []
        assert offline.sent == []

    def test_routing_error_falls_back_to_console(self, recording_channel):
        """A failure inside routing is recorded and reported on the console."""
        console = recording_channel("console")

        def explode(alert):
            raise RuntimeError("bad predicate")

        system = AlertSystem(channels={"console": console}, rules=[_rule(["console"], condition=explode)])
        entry = asyncio.run(system.trigger_alert(Alert("x", AlertSeverity.HIGH, "m")))

        assert entry.outcome == AlertOutcome.FAILED
        assert entry.success is False
        assert console.types == ["alert_system_error"]
        assert console.sent[0].details["original_type"] == "x"

    def test_default_rules(self):
        """The built-in rule set covers severities and system events."""
        rules = {rule.id: rule for rule in default_rules()}
        assert rules["critical-system-failure"].throttle_s == 60
        assert rules["critical-system-failure"].escalation.after_s == 300
        assert rules["high-priority-alert"].escalation.to_channels == ("email",)
        assert rules["health-check-failures"].matches(Alert("health_check_error", "low", "m"))
        assert rules["quality-gate-failures"].matches(Alert("quality_gate_system_shutdown", "low", "m"))


class TestThrottling:
    """Per rule and alert type throttling."""

    def test_second_alert_throttled(self, recording_channel):
        """Two alerts within the window dispatch once; the second is a recorded no-op."""
        channel = recording_channel("ops")
        system = AlertSystem(channels={"ops": channel}, rules=[_rule(["ops"], throttle_s=60)])

        async def scenario():
            first = await system.trigger_alert(Alert("disk_full", AlertSeverity.MEDIUM, "1"))
            second = await system.trigger_alert(Alert("disk_full", AlertSeverity.MEDIUM, "2"))
            return first, second

        first, second = asyncio.run(scenario())

        assert len(channel.sent) == 1
        assert first.outcome == AlertOutcome.DISPATCHED
        assert second.outcome == AlertOutcome.THROTTLED
        assert second.success is True
        assert second.channels == []
        assert len(system.get_alert_history()) == 2

    def test_throttle_is_per_alert_type(self, recording_channel):
        """Different alert types do not share a throttle window."""
        channel = recording_channel("ops")
        system = AlertSystem(channels={"ops": channel}, rules=[_rule(["ops"], throttle_s=60)])

        async def scenario():
            await system.trigger_alert(Alert("a", AlertSeverity.MEDIUM, "1"))
            await system.trigger_alert(Alert("b", AlertSeverity.MEDIUM, "2"))

        asyncio.run(scenario())
        assert channel.types == ["a", "b"]

    def test_window_expires(self, recording_channel):
        """Once the window passes the rule dispatches again."""
        now = [1000.0]
        channel = recording_channel("ops")
        system = AlertSystem(
            channels={"ops": channel},
            rules=[_rule(["ops"], throttle_s=60)],
            clock=lambda: now[0],
        )

        async def scenario():
            await system.trigger_alert(Alert("a", AlertSeverity.MEDIUM, "1"))
            now[0] += 30
            await system.trigger_alert(Alert("a", AlertSeverity.MEDIUM, "2"))
            now[0] += 31
            await system.trigger_alert(Alert("a", AlertSeverity.MEDIUM, "3"))

        asyncio.run(scenario())
        assert [a.message for a in channel.sent] == ["1", "3"]

    def test_clear_throttling(self, recording_channel):
        """Clearing throttle state allows an immediate resend."""
        channel = recording_channel("ops")
        system = AlertSystem(channels={"ops": channel}, rules=[_rule(["ops"], throttle_s=60)])

        async def scenario():
            await system.trigger_alert(Alert("a", AlertSeverity.MEDIUM, "1"))
            system.clear_throttling()
            await system.trigger_alert(Alert("a", AlertSeverity.MEDIUM, "2"))

        asyncio.run(scenario())
        assert len(channel.sent) == 2


class TestEscalation:
    """Delayed escalation."""

    def _system(self, recording_channel, after_s=0.1):
        primary = recording_channel("primary")
        pager = recording_channel("pager")
        rule = _rule(
            ["primary"],
            escalation=EscalationRule(after_s, ("pager",), AlertSeverity.CRITICAL),
        )
        return AlertSystem(channels={"primary": primary, "pager": pager}, rules=[rule]), primary, pager

    def test_escalates_once_within_window(self, recording_channel):
        """An unacknowledged alert escalates once, shortly after its delay."""
        system, primary, pager = self._system(recording_channel)

        async def scenario():
            start = time.monotonic()
            await system.trigger_alert(Alert("api_down", AlertSeverity.HIGH, "API down"))
            await asyncio.sleep(0.3)
            return start

        start = asyncio.run(scenario())

        assert len(pager.sent) == 1
        escalated = pager.sent[0]
        assert escalated.type == "escalated_api_down"
        assert escalated.severity == AlertSeverity.CRITICAL
        assert escalated.message == "ESCALATED: API down"
        assert 0.1 <= pager.sent_at[0] - start < 0.2
        assert system.pending_escalation_count() == 0
        assert system.get_alert_history()[-1].outcome == AlertOutcome.ESCALATED

    def test_low_severity_never_escalates(self, recording_channel):
        """Low alerts do not arm escalations."""
        system, _, pager = self._system(recording_channel)

        async def scenario():
            await system.trigger_alert(Alert("api_slow", AlertSeverity.LOW, "slow"))
            pending = system.pending_escalation_count()
            await asyncio.sleep(0.2)
            return pending

        assert asyncio.run(scenario()) == 0
        assert pager.sent == []

    def test_acknowledge_cancels(self, recording_channel):
        """Acknowledging an alert cancels its pending escalation."""
        system, _, pager = self._system(recording_channel)

        async def scenario():
            alert = Alert("api_down", AlertSeverity.HIGH, "API down")
            await system.trigger_alert(alert)
            cancelled = system.acknowledge(alert)
            await asyncio.sleep(0.2)
            return cancelled

        assert asyncio.run(scenario()) == 1
        assert pager.sent == []
        assert system.pending_escalation_count() == 0

    def test_rearm_replaces_timer(self, recording_channel):
        """Re-sending the same alert replaces its escalation timer."""
        system, primary, pager = self._system(recording_channel)

        async def scenario():
            alert = Alert("api_down", AlertSeverity.HIGH, "API down")
            await system.trigger_alert(alert)
            await system.trigger_alert(alert)
            pending = system.pending_escalation_count()
            await asyncio.sleep(0.3)
            return pending

        assert asyncio.run(scenario()) == 1
        assert len(primary.sent) == 2
        assert len(pager.sent) == 1

    def test_clear_escalations(self, recording_channel):
        """Clearing escalations cancels every timer."""
        system, _, pager = self._system(recording_channel)

        async def scenario():
            await system.trigger_alert(Alert("a", AlertSeverity.HIGH, "1"))
            await system.trigger_alert(Alert("b", AlertSeverity.CRITICAL, "2"))
            pending = system.pending_escalation_count()
            system.clear_escalations()
            await asyncio.sleep(0.2)
            return pending

        assert asyncio.run(scenario()) == 2
        assert pager.sent == []


class TestHistoryAndStats:
    def test_history_bounded(self, recording_channel):
        """History keeps only the newest entries."""
        system = AlertSystem(channels={"console": recording_channel("console")}, rules=[], history_size=3)

        async def scenario():
            for i in range(5):
                await system.trigger_alert(Alert(f"event_{i}", AlertSeverity.LOW, "m"))

        asyncio.run(scenario())
        history = system.get_alert_history()
        assert [entry.alert.type for entry in history] == ["event_2", "event_3", "event_4"]
        assert len(system.get_alert_history(limit=1)) == 1

    def test_stats(self, recording_channel):
        """Stats summarize the last day of alerts."""
        system = AlertSystem(channels={"console": recording_channel("console")}, rules=[])

        async def scenario():
            await system.trigger_alert(Alert("a", AlertSeverity.LOW, "m"))
            await system.trigger_alert(Alert("b", AlertSeverity.CRITICAL, "m"))

        asyncio.run(scenario())
        stats = system.get_alert_stats()
        assert stats["total_24h"] == 2
        assert stats["severity_count"] == {"low": 1, "critical": 1}
        assert stats["success_rate"] == pytest.approx(100.0)
        assert stats["active_channels"] == ["console"]
        assert stats["pending_escalations"] == 0

    def test_channel_registry(self, recording_channel):
        """Channels can be added and removed at runtime."""
        system = AlertSystem(channels={}, rules=[])
        system.add_alert_channel("pager", recording_channel("pager", available=False))
        assert system.get_channel_status() == {"pager": False}
        system.remove_alert_channel("pager")
        assert system.get_channel_status() == {}
