"""Notification channel contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

from secops.models.alerts import Alert


class NotificationChannel(ABC):
    """Delivers one alert to one destination type.

    ``deliver`` raises :class:`~secops.errors.ChannelDeliveryFailure` on any
    failure.  The dispatcher isolates channels from each other, so a channel
    never needs to protect its siblings.
    """

    name: str = "channel"

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    @abstractmethod
    async def deliver(self, alert: Alert) -> None:
        ...

    async def close(self) -> None:
        return None
