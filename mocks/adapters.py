"""In-memory enforcement backends, reputation sources and channels.

They implement the same ports as the real adapters, record every call, and
can be told to fail, so service behaviour is testable without firewalls,
network access or credentials.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

from secops.channels.base import NotificationChannel
from secops.enforcement.base import EnforcementBackend
from secops.errors import ChannelDeliveryFailure, EnforcementFailure, SourceUnavailableError
from secops.models.alerts import Alert
from secops.models.blocking import BlockRule
from secops.models.reputation import IPReputation
from secops.sources.base import ReputationSource


class RecordingBackend(EnforcementBackend):
    def __init__(self, name: str = "recording", fail: bool = False, delay: float = 0.0) -> None:
        self.name = name
        self.fail = fail
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.banned: set[str] = set()
        self.closed = False

    async def ban(self, subject: str, rule: BlockRule) -> None:
        self.calls.append(("ban", subject))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise EnforcementFailure(self.name, subject, "simulated outage")
        self.banned.add(subject)

    async def unban(self, subject: str) -> None:
        self.calls.append(("unban", subject))
        if self.fail:
            raise EnforcementFailure(self.name, subject, "simulated outage")
        self.banned.discard(subject)

    async def close(self) -> None:
        self.closed = True


class StaticSource(ReputationSource):
    """Returns preset verdicts; unknown subjects get a clean score-0 verdict."""

    def __init__(
        self,
        name: str = "static",
        verdicts: Optional[Dict[str, IPReputation]] = None,
        fail: bool = False,
        enabled: bool = True,
        calls_per_minute: int = 10,
    ) -> None:
        super().__init__(enabled=enabled, calls_per_minute=calls_per_minute, timeout=1.0)
        self.name = name
        self.verdicts = dict(verdicts or {})
        self.fail = fail
        self.lookups: List[str] = []
        self.closed = False

    async def lookup(self, subject: str) -> IPReputation:
        self.lookups.append(subject)
        if self.fail:
            raise SourceUnavailableError(self.name, "simulated outage")
        verdict = self.verdicts.get(subject)
        if verdict is None:
            return IPReputation(subject=subject, score=0, source=self.name)
        return verdict

    async def close(self) -> None:
        self.closed = True
        await super().close()


def verdict(subject: str, source: str, malicious: bool, score: int | None = None) -> IPReputation:
    return IPReputation(
        subject=subject,
        is_malicious=malicious,
        score=score if score is not None else (90 if malicious else 5),
        report_count=12 if malicious else 0,
        categories=frozenset({"brute-force"}) if malicious else frozenset(),
        source=source,
    )


class RecordingChannel(NotificationChannel):
    def __init__(self, name: str = "recording", fail: bool = False, enabled: bool = True) -> None:
        super().__init__(enabled=enabled)
        self.name = name
        self.fail = fail
        self.delivered: List[Alert] = []
        self.closed = False

    async def deliver(self, alert: Alert) -> None:
        if self.fail:
            raise ChannelDeliveryFailure(self.name, alert.id, "simulated outage")
        self.delivered.append(alert)

    async def close(self) -> None:
        self.closed = True
