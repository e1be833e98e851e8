"""Alert fan-out with global rate limiting and title/severity grouping."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Iterable, List, Optional, Tuple

from secops.channels.base import NotificationChannel
from secops.errors import ChannelDeliveryFailure
from secops.models.alerts import Alert, DispatcherMetrics, DispatchStatus
from secops.signals import Signal, SignalBus
from secops.utils.clock import Clock
from secops.utils.logger import get_logger

logger = get_logger(__name__)

_RATE_WINDOW_SECONDS = 60.0


class AlertDispatcher:
    """Turns alerts into notifications on every enabled channel.

    Order of checks in :meth:`send_alert`:

    1. rate limit: at or above *max_alerts_per_minute* sent in the trailing
       minute → the whole alert is queued for :meth:`process_queue`;
    2. grouping: an alert with the same title and severity was sent within
       *grouping_window_seconds* → suppressed;
    3. delivery to every enabled channel, concurrently.  One channel failing
       never affects the others, and the alert counts as sent either way.
       There is no per-channel retry.
    """

    def __init__(
        self,
        channels: Iterable[NotificationChannel] = (),
        rate_limit_enabled: bool = True,
        max_alerts_per_minute: int = 10,
        grouping_enabled: bool = True,
        grouping_window_seconds: float = 300.0,
        channel_timeout_seconds: float = 15.0,
        signals: Optional[SignalBus] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_alerts_per_minute < 1:
            raise ValueError("max_alerts_per_minute must be at least 1")
        self._channels: List[NotificationChannel] = list(channels)
        self.rate_limit_enabled = rate_limit_enabled
        self.max_alerts_per_minute = max_alerts_per_minute
        self.grouping_enabled = grouping_enabled
        self.grouping_window_seconds = grouping_window_seconds
        self.channel_timeout_seconds = channel_timeout_seconds
        self.signals = signals or SignalBus()
        self._clock = clock or Clock()

        self._queue: Deque[Alert] = deque()
        # (sent_at, alert), oldest first
        self._sent: Deque[Tuple[float, Alert]] = deque()
        self._decision_lock = asyncio.Lock()
        self._metrics = DispatcherMetrics()

    @property
    def channels(self) -> List[NotificationChannel]:
        return list(self._channels)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_alert(self, alert: Alert) -> DispatchStatus:
        async with self._decision_lock:
            now = self._clock.time()
            self._prune_sent(now)

            if self._is_rate_limited(now):
                self._queue.append(alert)
                self._metrics.rate_limited += 1
                self._metrics.queued = len(self._queue)
                logger.warning("alert_rate_limited", alert_id=alert.id, queued=len(self._queue))
                self.signals.emit(Signal.RATE_LIMITED, {"alert": alert})
                return DispatchStatus.QUEUED

            similar = self._find_similar(alert, now)
            if similar is not None:
                self._metrics.grouped += 1
                logger.info("alert_grouped", alert_id=alert.id, grouped_with=similar.id)
                self.signals.emit(Signal.GROUPED, {"alert": alert, "similar_to": similar})
                return DispatchStatus.GROUPED

            # Recorded before delivery so a concurrent duplicate is grouped
            self._sent.append((now, alert))

        await self._fan_out(alert)
        self._metrics.sent += 1
        self.signals.emit(Signal.SENT, {"alert": alert})
        return DispatchStatus.SENT

    async def _fan_out(self, alert: Alert) -> None:
        active = [c for c in self._channels if c.enabled]
        if not active:
            logger.warning("alert_no_channels", alert_id=alert.id)
            return

        results = await asyncio.gather(
            *(asyncio.wait_for(c.deliver(alert), timeout=self.channel_timeout_seconds) for c in active),
            return_exceptions=True,
        )
        for channel, result in zip(active, results):
            if isinstance(result, BaseException):
                self._metrics.channel_failures += 1
                if isinstance(result, asyncio.TimeoutError):
                    result = ChannelDeliveryFailure(channel.name, alert.id, "timed out")
                logger.error(
                    "alert_channel_failed",
                    channel=channel.name,
                    alert_id=alert.id,
                    error=str(result),
                )

    def _is_rate_limited(self, now: float) -> bool:
        if not self.rate_limit_enabled:
            return False
        cutoff = now - _RATE_WINDOW_SECONDS
        recent = sum(1 for sent_at, _ in self._sent if sent_at > cutoff)
        return recent >= self.max_alerts_per_minute

    def _find_similar(self, alert: Alert, now: float) -> Optional[Alert]:
        if not self.grouping_enabled:
            return None
        cutoff = now - self.grouping_window_seconds
        for sent_at, sent in reversed(self._sent):
            if sent_at < cutoff:
                break
            if sent.title == alert.title and sent.severity == alert.severity:
                return sent
        return None

    def _prune_sent(self, now: float) -> None:
        keep = max(_RATE_WINDOW_SECONDS, self.grouping_window_seconds if self.grouping_enabled else 0.0)
        cutoff = now - keep
        while self._sent and self._sent[0][0] < cutoff:
            self._sent.popleft()

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def get_queued_alerts(self) -> List[Alert]:
        return list(self._queue)

    async def process_queue(self) -> int:
        """Resend queued alerts while under the rate limit.

        Returns:
            Number of alerts taken off the queue (delivered or grouped).
        """
        processed = 0
        while self._queue:
            async with self._decision_lock:
                now = self._clock.time()
                self._prune_sent(now)
                if self._is_rate_limited(now):
                    break
                alert = self._queue.popleft()
                self._metrics.queued = len(self._queue)
            if await self.send_alert(alert) == DispatchStatus.QUEUED:
                break
            processed += 1
        if processed:
            logger.info("alert_queue_processed", processed=processed, remaining=len(self._queue))
        return processed

    def get_metrics(self) -> DispatcherMetrics:
        return self._metrics.model_copy(update={"queued": len(self._queue)})

    async def close(self) -> None:
        for channel in self._channels:
            await channel.close()
