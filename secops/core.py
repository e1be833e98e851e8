"""Composition root: one SecurityOperations per process."""

from __future__ import annotations

from typing import List, Optional

from secops.channels import EmailChannel, NotificationChannel, PagerDutyChannel, SlackChannel, SMTPSettings
from secops.enforcement import EnforcementBackend, Fail2banBackend, IptablesBackend
from secops.services.alert_dispatcher import AlertDispatcher
from secops.services.auto_blocker import AutoBlocker
from secops.services.reputation import ReputationService
from secops.signals import SignalBus
from secops.sources import AbuseIPDBSource, ReputationSource, VirusTotalSource
from secops.utils.clock import Clock
from secops.utils.config import Config
from secops.utils.logger import get_logger
from secops.utils.scheduler import AsyncioScheduler, ScheduledJob, Scheduler

logger = get_logger(__name__)


class SecurityOperations:
    """Owns the three services, the shared signal bus and the scheduler.

    Producers (authentication endpoints, request middleware) talk to
    ``blocker``, ``reputation`` and ``dispatcher`` directly.  Subscribe to
    ``signals`` to observe every transition from one place.
    """

    def __init__(
        self,
        blocker: AutoBlocker,
        reputation: ReputationService,
        dispatcher: AlertDispatcher,
        signals: SignalBus,
        scheduler: Optional[Scheduler] = None,
        sweep_interval_seconds: float = 60.0,
        queue_drain_interval_seconds: Optional[float] = None,
    ) -> None:
        self.blocker = blocker
        self.reputation = reputation
        self.dispatcher = dispatcher
        self.signals = signals
        self._scheduler = scheduler
        self.sweep_interval_seconds = sweep_interval_seconds
        self.queue_drain_interval_seconds = queue_drain_interval_seconds
        self._jobs: List[ScheduledJob] = []

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        backends: Optional[List[EnforcementBackend]] = None,
        sources: Optional[List[ReputationSource]] = None,
        channels: Optional[List[NotificationChannel]] = None,
    ) -> "SecurityOperations":
        """Build every component from *cfg*.

        *backends*, *sources* and *channels* replace the adapters that would
        otherwise be built from the enable flags (used by the demo and tests).
        """
        clock = clock or Clock()
        signals = SignalBus()

        if sources is None:
            sources = build_sources(cfg)
        if channels is None:
            channels = build_channels(cfg)
        if backends is None:
            backends = build_backends(cfg)

        reputation = ReputationService(
            sources=sources,
            blacklist=cfg.blacklist,
            cache_enabled=cfg.cache_enabled,
            cache_ttl_seconds=cfg.cache_ttl_seconds,
            cache_max_entries=cfg.cache_max_entries,
            clock=clock,
        )
        dispatcher = AlertDispatcher(
            channels=channels,
            rate_limit_enabled=cfg.rate_limit_enabled,
            max_alerts_per_minute=cfg.max_alerts_per_minute,
            grouping_enabled=cfg.grouping_enabled,
            grouping_window_seconds=cfg.grouping_window_seconds,
            channel_timeout_seconds=cfg.channel_timeout_seconds,
            signals=signals,
            clock=clock,
        )
        blocker = AutoBlocker(
            rules=cfg.rules,
            whitelist=cfg.whitelist,
            backends=backends,
            reputation=reputation if cfg.reputation_weighting else None,
            dispatcher=dispatcher,
            signals=signals,
            clock=clock,
            enforcement_timeout_seconds=cfg.enforcement_timeout_seconds,
        )
        logger.info(
            "secops_initialized",
            rules=len(cfg.rules),
            sources=[s.name for s in sources if s.enabled],
            channels=[c.name for c in channels if c.enabled],
            backends=[b.name for b in backends],
        )
        return cls(
            blocker=blocker,
            reputation=reputation,
            dispatcher=dispatcher,
            signals=signals,
            scheduler=scheduler,
            sweep_interval_seconds=cfg.sweep_interval_seconds,
            queue_drain_interval_seconds=cfg.queue_drain_interval_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Schedule the expiry sweep (and queue draining, when configured).

        With the default AsyncioScheduler this must run inside the event loop.
        """
        if self._scheduler is None:
            self._scheduler = AsyncioScheduler()
        self._jobs.append(self.blocker.start(self._scheduler, self.sweep_interval_seconds))
        if self.queue_drain_interval_seconds:
            self._jobs.append(
                self._scheduler.every(
                    self.queue_drain_interval_seconds, self.dispatcher.process_queue, name="alert-queue-drain"
                )
            )
        logger.info("secops_started", jobs=[j.name for j in self._jobs])

    async def shutdown(self) -> None:
        """Cancel timers and close every adapter."""
        logger.info("secops_shutting_down")
        for job in self._jobs:
            job.cancel()
        self._jobs.clear()
        if self._scheduler is not None:
            await self._scheduler.shutdown()
        await self.blocker.close()
        await self.reputation.close()
        await self.dispatcher.close()


# ---------------------------------------------------------------------------
# Adapter factories
# ---------------------------------------------------------------------------


def build_sources(cfg: Config) -> List[ReputationSource]:
    """AbuseIPDB first, VirusTotal second, both possibly disabled."""
    return [
        AbuseIPDBSource(
            api_key=cfg.abuseipdb_api_key,
            enabled=cfg.abuseipdb_enabled,
            calls_per_minute=cfg.source_calls_per_minute,
            timeout=cfg.request_timeout,
        ),
        VirusTotalSource(
            api_key=cfg.virustotal_api_key,
            enabled=cfg.virustotal_enabled,
            calls_per_minute=cfg.source_calls_per_minute,
            timeout=cfg.request_timeout,
        ),
    ]


def build_channels(cfg: Config) -> List[NotificationChannel]:
    channels: List[NotificationChannel] = []
    if cfg.email_enabled:
        smtp = SMTPSettings(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_username,
            password=cfg.smtp_password,
            use_ssl=cfg.smtp_use_ssl,
            use_tls=cfg.smtp_use_tls,
            timeout=cfg.channel_timeout_seconds,
        )
        channels.append(EmailChannel(smtp, sender=cfg.email_from, recipients=list(cfg.email_to)))
    if cfg.slack_enabled:
        channels.append(SlackChannel(cfg.slack_webhook_url))
    if cfg.pagerduty_enabled:
        channels.append(PagerDutyChannel(cfg.pagerduty_integration_key))
    return channels


def build_backends(cfg: Config) -> List[EnforcementBackend]:
    backends: List[EnforcementBackend] = []
    if cfg.enable_fail2ban:
        backends.append(Fail2banBackend(timeout=cfg.enforcement_timeout_seconds))
    if cfg.enable_iptables:
        backends.append(IptablesBackend(timeout=cfg.enforcement_timeout_seconds))
    return backends
