"""Slack incoming-webhook channel."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from secops.channels.base import NotificationChannel
from secops.channels.formatting import severity_colour, severity_emoji
from secops.errors import ChannelDeliveryFailure
from secops.models.alerts import Alert
from secops.utils.logger import get_logger

logger = get_logger(__name__)


def build_slack_payload(alert: Alert) -> Dict[str, Any]:
    return {
        "text": f"{severity_emoji(alert.severity)} Security Alert: {alert.title}",
        "attachments": [
            {
                "color": severity_colour(alert.severity),
                "fields": [
                    {"title": "Severity", "value": alert.severity.value.upper(), "short": True},
                    {"title": "Source", "value": alert.source, "short": True},
                    {"title": "Time", "value": alert.timestamp.isoformat(), "short": True},
                    {"title": "Description", "value": alert.description, "short": False},
                ],
            }
        ],
    }


class SlackChannel(NotificationChannel):
    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        enabled: bool = True,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(enabled=enabled)
        self._webhook_url = webhook_url
        self.timeout = timeout
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(self, alert: Alert) -> None:
        if not self._webhook_url:
            raise ChannelDeliveryFailure(self.name, alert.id, "webhook URL not configured")
        try:
            resp = await self._http.post(self._webhook_url, json=build_slack_payload(alert), timeout=self.timeout)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChannelDeliveryFailure(self.name, alert.id, str(exc)) from exc
        logger.info("slack_alert_sent", alert_id=alert.id)

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()
