from secops.channels.base import NotificationChannel
from secops.channels.email import EmailChannel, SMTPSettings
from secops.channels.pagerduty import PagerDutyChannel
from secops.channels.slack import SlackChannel

__all__ = ["EmailChannel", "NotificationChannel", "PagerDutyChannel", "SlackChannel", "SMTPSettings"]
