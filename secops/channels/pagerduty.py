"""PagerDuty Events API v2 channel (``trigger`` events only)."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from secops.channels.base import NotificationChannel
from secops.channels.formatting import pagerduty_severity
from secops.errors import ChannelDeliveryFailure
from secops.models.alerts import Alert
from secops.utils.logger import get_logger

logger = get_logger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"


def build_pagerduty_event(alert: Alert, routing_key: str) -> Dict[str, Any]:
    return {
        "routing_key": routing_key,
        "event_action": "trigger",
        # repeated alerts with the same id collapse into one incident
        "dedup_key": alert.id,
        "payload": {
            "summary": alert.title,
            "severity": pagerduty_severity(alert.severity),
            "source": alert.source,
            "timestamp": alert.timestamp.isoformat(),
            "custom_details": {"description": alert.description, **alert.model_dump(mode="json")["metadata"]},
        },
    }


class PagerDutyChannel(NotificationChannel):
    name = "pagerduty"

    def __init__(
        self,
        integration_key: str,
        enabled: bool = True,
        events_url: str = PAGERDUTY_EVENTS_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(enabled=enabled)
        self._integration_key = integration_key
        self.events_url = events_url
        self.timeout = timeout
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(self, alert: Alert) -> None:
        if not self._integration_key:
            raise ChannelDeliveryFailure(self.name, alert.id, "integration key not configured")
        event = build_pagerduty_event(alert, self._integration_key)
        try:
            resp = await self._http.post(self.events_url, json=event, timeout=self.timeout)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChannelDeliveryFailure(self.name, alert.id, str(exc)) from exc
        logger.info("pagerduty_alert_sent", alert_id=alert.id)

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()
