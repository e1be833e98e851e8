"""End-to-end tests for SecurityOperations wiring and lifecycle."""

from __future__ import annotations

import asyncio
import os
from unittest.mock import patch

import pytest

from main import run_demo
from mocks.adapters import RecordingBackend, RecordingChannel, StaticSource, verdict
from secops.channels import EmailChannel, PagerDutyChannel, SlackChannel
from secops.core import SecurityOperations, build_backends, build_channels, build_sources
from secops.enforcement import Fail2banBackend, IptablesBackend
from secops.models.alerts import Alert
from secops.models.blocking import BlockRule, Severity
from secops.utils.config import load_config
from secops.utils.scheduler import ManualScheduler

ATTACKER = "203.0.113.66"


@pytest.fixture()
def cfg():
    with patch.dict(os.environ, {}, clear=True):
        yield load_config(
            rules=[
                BlockRule(
                    id="auth-brute-force",
                    name="Authentication brute force",
                    threshold=5,
                    window_seconds=60,
                    ban_duration_seconds=300,
                    severity=Severity.HIGH,
                )
            ],
            whitelist=["192.0.2.10"],
            queue_drain_interval_seconds=30,
        )


@pytest.fixture()
def ops_parts(cfg, clock, scheduler):
    backend = RecordingBackend("firewall")
    channel = RecordingChannel("console")
    source = StaticSource("intel", verdicts={ATTACKER: verdict(ATTACKER, "intel", True)})
    ops = SecurityOperations.from_config(
        cfg, clock=clock, scheduler=scheduler, backends=[backend], sources=[source], channels=[channel]
    )
    return ops, backend, channel, source


class TestWiring:
    def test_services_share_one_signal_bus(self, ops_parts):
        ops, *_ = ops_parts
        assert ops.blocker.signals is ops.signals
        assert ops.dispatcher.signals is ops.signals

    def test_block_flows_through_to_enforcement_and_alert(self, ops_parts):
        ops, backend, channel, _ = ops_parts

        async def scenario():
            for _ in range(5):
                await ops.blocker.report_infraction(ATTACKER, "auth-brute-force")

        asyncio.run(scenario())
        assert backend.banned == {ATTACKER}
        [alert] = channel.delivered
        # HIGH rule raised by the malicious verdict
        assert alert.severity == Severity.CRITICAL
        assert alert.metadata["threatIntel"]["source"] == "intel"

    def test_reputation_weighting_can_be_disabled(self, clock, scheduler):
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config(reputation_weighting=False)
        channel = RecordingChannel()
        source = StaticSource("intel", verdicts={ATTACKER: verdict(ATTACKER, "intel", True)})
        ops = SecurityOperations.from_config(
            cfg, clock=clock, scheduler=scheduler, backends=[], sources=[source], channels=[channel]
        )

        asyncio.run(ops.blocker.report_infraction(ATTACKER, "exploit-attempt"))
        [alert] = channel.delivered
        assert alert.severity == Severity.CRITICAL
        assert "threatIntel" not in alert.metadata
        assert source.lookups == []


class TestLifecycle:
    def test_start_schedules_sweep_and_queue_drain(self, ops_parts, scheduler):
        ops, *_ = ops_parts
        ops.start()
        assert sorted(j.name for j in scheduler.jobs) == ["alert-queue-drain", "expiry-sweep"]

    def test_scheduled_jobs_run_on_virtual_time(self, ops_parts, clock, scheduler):
        ops, backend, channel, _ = ops_parts

        async def scenario():
            ops.start()
            for _ in range(5):
                await ops.blocker.report_infraction(ATTACKER, "auth-brute-force")
            for i in range(12):
                await ops.dispatcher.send_alert(Alert(title=f"noise {i}"))
            clock.advance(301)
            await scheduler.run_due()

        asyncio.run(scenario())
        assert not ops.blocker.is_blocked(ATTACKER)
        assert backend.calls[-1] == ("unban", ATTACKER)
        # one block alert plus nine noise alerts hit the cap, the rest drained
        assert ops.dispatcher.get_queued_alerts() == []
        assert len(channel.delivered) == 13

    def test_shutdown_closes_everything(self, ops_parts, scheduler):
        ops, backend, channel, source = ops_parts

        async def scenario():
            ops.start()
            await ops.shutdown()

        asyncio.run(scenario())
        assert scheduler.jobs == []
        assert backend.closed and channel.closed and source.closed


class TestFactories:
    def test_build_sources_keeps_priority_order(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config(abuseipdb_enabled=True, abuseipdb_api_key="k")
        sources = build_sources(cfg)
        try:
            assert [s.name for s in sources] == ["abuseipdb", "virustotal"]
            assert [s.enabled for s in sources] == [True, False]
        finally:
            asyncio.run(_close_all(sources))

    def test_build_channels(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config(
                email_enabled=True,
                smtp_host="smtp.example.com",
                email_from="secops@example.com",
                email_to=["soc@example.com"],
                slack_enabled=True,
                slack_webhook_url="https://hooks.slack.example/x",
                pagerduty_enabled=True,
                pagerduty_integration_key="pd",
            )
        channels = build_channels(cfg)
        try:
            assert [type(c) for c in channels] == [EmailChannel, SlackChannel, PagerDutyChannel]
        finally:
            asyncio.run(_close_all(channels))

    def test_build_channels_none_enabled(self):
        with patch.dict(os.environ, {}, clear=True):
            assert build_channels(load_config()) == []

    def test_build_backends(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config(enable_fail2ban=True, enable_iptables=True)
        assert [type(b) for b in build_backends(cfg)] == [Fail2banBackend, IptablesBackend]


async def _close_all(adapters) -> None:
    for adapter in adapters:
        await adapter.close()


class TestDemo:
    def test_demo_scenario(self):
        with patch.dict(os.environ, {}, clear=True):
            summary = asyncio.run(run_demo())

        blocked = {e["subject"]: e for e in summary["blocked"]}
        # attacker escalated to permanent, scanner's temporary block expired
        assert list(blocked) == ["203.0.113.66"]
        assert blocked["203.0.113.66"]["expires_at"] is None
        assert summary["blocker_metrics"]["whitelist_hits"] == 10
        assert summary["blocker_metrics"]["escalations"] == 1
        assert ("unban", "198.51.100.7") in [tuple(c) for c in summary["enforcement_calls"]]
