"""
Presentation helpers shared by notification channels.

Severity drives colour and priority hints only; it never changes whether
or where an alert is delivered.

Colour mapping
--------------
  critical → #d73027 (red)
  high     → #fc8d59 (orange)
  medium   → #fee08b (yellow)
  low      → #91cf60 (light green)
  info     → #1a9850 (green)
"""

from __future__ import annotations

import html
import json

from secops.models.alerts import Alert
from secops.models.blocking import Severity

_SEVERITY_COLOUR: dict[Severity, str] = {
    Severity.CRITICAL: "#d73027",
    Severity.HIGH: "#fc8d59",
    Severity.MEDIUM: "#fee08b",
    Severity.LOW: "#91cf60",
    Severity.INFO: "#1a9850",
}

_SEVERITY_EMOJI: dict[Severity, str] = {
    Severity.CRITICAL: ":rotating_light:",
    Severity.HIGH: ":red_circle:",
    Severity.MEDIUM: ":large_yellow_circle:",
    Severity.LOW: ":large_green_circle:",
    Severity.INFO: ":white_circle:",
}

# PagerDuty Events v2 only knows four severities
_PAGERDUTY_SEVERITY: dict[Severity, str] = {
    Severity.CRITICAL: "critical",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "info",
    Severity.INFO: "info",
}


def severity_colour(severity: Severity) -> str:
    return _SEVERITY_COLOUR.get(severity, "#000000")


def severity_emoji(severity: Severity) -> str:
    return _SEVERITY_EMOJI.get(severity, ":white_circle:")


def pagerduty_severity(severity: Severity) -> str:
    return _PAGERDUTY_SEVERITY.get(severity, "warning")


def email_subject(alert: Alert) -> str:
    return f"[{alert.severity.value.upper()}] {alert.title}"


def format_text(alert: Alert) -> str:
    lines = [
        "SECURITY ALERT",
        "",
        f"Severity: {alert.severity.value.upper()}",
        f"Title: {alert.title}",
        f"Time: {alert.timestamp.isoformat()}",
        f"Source: {alert.source}",
        "",
        "Description:",
        alert.description,
    ]
    if alert.metadata:
        lines += ["", "Metadata:", json.dumps(alert.metadata, indent=2, default=str)]
    return "\n".join(lines)


def format_html(alert: Alert) -> str:
    colour = severity_colour(alert.severity)
    rows = [
        ("Severity", f'<span style="color: {colour};">{alert.severity.value.upper()}</span>'),
        ("Title", html.escape(alert.title)),
        ("Time", alert.timestamp.isoformat()),
        ("Source", html.escape(alert.source)),
    ]
    cell = 'style="padding: 8px; border: 1px solid #ddd;"'
    table = "".join(f"<tr><td {cell}><strong>{k}</strong></td><td {cell}>{v}</td></tr>" for k, v in rows)
    metadata = ""
    if alert.metadata:
        dumped = html.escape(json.dumps(alert.metadata, indent=2, default=str))
        metadata = f"<h3>Metadata</h3><pre>{dumped}</pre>"
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px;">'
        f'<h2 style="color: {colour};">Security Alert</h2>'
        f'<table style="width: 100%; border-collapse: collapse;">{table}</table>'
        f"<h3>Description</h3><p>{html.escape(alert.description)}</p>"
        f"{metadata}</div>"
    )
