"""Pytest fixtures shared across the test suite."""

from __future__ import annotations

import pytest

from mocks.adapters import RecordingBackend, RecordingChannel, StaticSource
from secops.models.blocking import PERMANENT_BAN, BlockAction, BlockRule, Severity
from secops.services.alert_dispatcher import AlertDispatcher
from secops.services.auto_blocker import AutoBlocker
from secops.services.reputation import ReputationService
from secops.signals import SignalBus
from secops.utils.clock import ManualClock
from secops.utils.scheduler import ManualScheduler


class SignalRecorder:
    """Collects every emitted signal in order."""

    def __init__(self, bus: SignalBus) -> None:
        self.events: list = []
        bus.subscribe(None, lambda signal, payload: self.events.append((signal, payload)))

    def names(self) -> list:
        return [signal.value for signal, _ in self.events]

    def payloads(self, name: str) -> list:
        return [payload for signal, payload in self.events if signal.value == name]


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@pytest.fixture()
def brute_force_rule() -> BlockRule:
    return BlockRule(
        id="brute-force",
        name="SSH brute force",
        threshold=5,
        window_seconds=60,
        ban_duration_seconds=300,
        action=BlockAction.BAN_TEMP,
        severity=Severity.HIGH,
    )


@pytest.fixture()
def exploit_rule() -> BlockRule:
    return BlockRule(
        id="exploit",
        name="Exploit attempt",
        threshold=1,
        window_seconds=3600,
        ban_duration_seconds=PERMANENT_BAN,
        action=BlockAction.BAN_PERMANENT,
        severity=Severity.CRITICAL,
    )


# ---------------------------------------------------------------------------
# Adapters and services
# ---------------------------------------------------------------------------


@pytest.fixture()
def backend() -> RecordingBackend:
    return RecordingBackend("firewall")


@pytest.fixture()
def channel() -> RecordingChannel:
    return RecordingChannel("console")


@pytest.fixture()
def signals() -> SignalBus:
    return SignalBus()


@pytest.fixture()
def recorder(signals) -> SignalRecorder:
    return SignalRecorder(signals)


@pytest.fixture()
def blocker(brute_force_rule, exploit_rule, backend, signals, clock) -> AutoBlocker:
    return AutoBlocker(
        rules=[brute_force_rule, exploit_rule],
        whitelist=["192.0.2.10"],
        backends=[backend],
        signals=signals,
        clock=clock,
    )


@pytest.fixture()
def dispatcher(channel, signals, clock) -> AlertDispatcher:
    return AlertDispatcher(
        channels=[channel],
        rate_limit_enabled=True,
        max_alerts_per_minute=10,
        grouping_enabled=True,
        grouping_window_seconds=300,
        signals=signals,
        clock=clock,
    )


@pytest.fixture()
def static_source() -> StaticSource:
    return StaticSource("intel")


@pytest.fixture()
def reputation(static_source, clock) -> ReputationService:
    return ReputationService(sources=[static_source], cache_ttl_seconds=600, clock=clock)
