"""SMTP email channel.

smtplib is blocking, so each delivery runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List

from secops.channels.base import NotificationChannel
from secops.channels.formatting import email_subject, format_html, format_text
from secops.errors import ChannelDeliveryFailure
from secops.models.alerts import Alert
from secops.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SMTPSettings:
    host: str
    port: int = 587
    username: str = ""
    password: str = field(default="", repr=False)
    use_ssl: bool = False
    use_tls: bool = True
    timeout: float = 10.0


class EmailChannel(NotificationChannel):
    name = "email"

    def __init__(
        self,
        smtp: SMTPSettings,
        sender: str,
        recipients: List[str],
        enabled: bool = True,
    ) -> None:
        super().__init__(enabled=enabled)
        self.smtp = smtp
        self.sender = sender
        self.recipients = list(recipients)

    def build_message(self, alert: Alert) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = email_subject(alert)
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        msg.attach(MIMEText(format_text(alert), "plain", "utf-8"))
        msg.attach(MIMEText(format_html(alert), "html", "utf-8"))
        return msg

    async def deliver(self, alert: Alert) -> None:
        if not self.recipients:
            raise ChannelDeliveryFailure(self.name, alert.id, "no recipients configured")
        try:
            await asyncio.to_thread(self._send_sync, alert)
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelDeliveryFailure(self.name, alert.id, str(exc)) from exc
        logger.info("email_alert_sent", alert_id=alert.id, recipients=len(self.recipients))

    def _send_sync(self, alert: Alert) -> None:
        msg = self.build_message(alert)
        context = ssl.create_default_context()
        if self.smtp.use_ssl:
            server = smtplib.SMTP_SSL(self.smtp.host, self.smtp.port, timeout=self.smtp.timeout, context=context)
        else:
            server = smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=self.smtp.timeout)
        with server:
            if not self.smtp.use_ssl and self.smtp.use_tls:
                server.starttls(context=context)
            if self.smtp.username and self.smtp.password:
                server.login(self.smtp.username, self.smtp.password)
            server.sendmail(self.sender, self.recipients, msg.as_string())
