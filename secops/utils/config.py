"""
Configuration management for the security-operations core.

Loads settings from ``SECOPS_*`` environment variables or a .env file.
Credentials (API keys, SMTP password, webhook URLs) are treated as secrets
and never logged.  Configuration is read once at startup; nothing here is
hot-reloaded.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

from secops.errors import ConfigError
from secops.models.blocking import PERMANENT_BAN, BlockAction, BlockRule, Severity

# Load .env from the working directory if present, no-op otherwise
load_dotenv()

DEFAULT_RULES: Tuple[BlockRule, ...] = (
    BlockRule(
        id="auth-brute-force",
        name="Authentication brute force",
        threshold=5,
        window_seconds=60,
        ban_duration_seconds=300,
        action=BlockAction.BAN_TEMP,
        severity=Severity.HIGH,
    ),
    BlockRule(
        id="api-abuse",
        name="API abuse",
        threshold=100,
        window_seconds=60,
        ban_duration_seconds=600,
        action=BlockAction.RATE_LIMIT,
        severity=Severity.MEDIUM,
    ),
    BlockRule(
        id="exploit-attempt",
        name="Exploit attempt",
        threshold=1,
        window_seconds=3600,
        ban_duration_seconds=PERMANENT_BAN,
        action=BlockAction.BAN_PERMANENT,
        severity=Severity.CRITICAL,
    ),
)

_RULES_ADAPTER = TypeAdapter(List[BlockRule])


@dataclass(frozen=True)
class Config:
    """Immutable runtime configuration."""

    rules: Tuple[BlockRule, ...] = DEFAULT_RULES
    whitelist: Tuple[str, ...] = ()
    blacklist: Tuple[str, ...] = ()

    # Auto-blocker
    sweep_interval_seconds: float = 60.0
    enable_fail2ban: bool = False
    enable_iptables: bool = False
    enforcement_timeout_seconds: float = 15.0
    reputation_weighting: bool = True

    # Reputation
    cache_enabled: bool = True
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 10_000
    abuseipdb_enabled: bool = False
    abuseipdb_api_key: str = field(default="", repr=False)
    virustotal_enabled: bool = False
    virustotal_api_key: str = field(default="", repr=False)
    source_calls_per_minute: int = 10
    request_timeout: float = 10.0

    # Alerting
    rate_limit_enabled: bool = True
    max_alerts_per_minute: int = 10
    grouping_enabled: bool = True
    grouping_window_seconds: float = 300.0
    queue_drain_interval_seconds: Optional[float] = None
    channel_timeout_seconds: float = 15.0
    slack_enabled: bool = False
    slack_webhook_url: str = field(default="", repr=False)
    pagerduty_enabled: bool = False
    pagerduty_integration_key: str = field(default="", repr=False)
    email_enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = field(default="", repr=False)
    smtp_use_ssl: bool = False
    smtp_use_tls: bool = True
    email_from: str = ""
    email_to: Tuple[str, ...] = ()

    log_level: str = "INFO"


def load_rules(path: str | Path) -> Tuple[BlockRule, ...]:
    """Read a JSON array of rule objects.

    Raises:
        ConfigError: If the file is unreadable, not JSON, or a rule is invalid.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read rules file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"rules file {path} is not valid JSON: {exc}") from exc

    try:
        rules = _RULES_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid rule in {path}: {exc}") from exc

    ids = [r.id for r in rules]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigError(f"duplicate rule ids in {path}: {', '.join(duplicates)}")
    if not rules:
        raise ConfigError(f"rules file {path} defines no rules")
    return tuple(rules)


def _env_list(name: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(name, "").split(",") if item.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _env_number(name: str, default: Any, cast: type) -> Any:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a {cast.__name__}, got {value!r}") from exc


def load_config(**overrides: Any) -> Config:
    """
    Build a Config instance from environment variables.

    Any keyword argument passed in overrides the corresponding env var
    (used by the CLI and by tests).

    Raises:
        ConfigError: On malformed values, an unreadable rules file, or an
            enabled integration that is missing its credentials.
    """
    values: dict[str, Any] = {
        "whitelist": _env_list("SECOPS_WHITELIST"),
        "blacklist": _env_list("SECOPS_BLACKLIST"),
        "sweep_interval_seconds": _env_number("SECOPS_SWEEP_INTERVAL", 60.0, float),
        "enable_fail2ban": _env_bool("SECOPS_ENABLE_FAIL2BAN", False),
        "enable_iptables": _env_bool("SECOPS_ENABLE_IPTABLES", False),
        "enforcement_timeout_seconds": _env_number("SECOPS_ENFORCEMENT_TIMEOUT", 15.0, float),
        "reputation_weighting": _env_bool("SECOPS_REPUTATION_WEIGHTING", True),
        "cache_enabled": _env_bool("SECOPS_CACHE_ENABLED", True),
        "cache_ttl_seconds": _env_number("SECOPS_CACHE_TTL", 3600.0, float),
        "cache_max_entries": _env_number("SECOPS_CACHE_MAX_ENTRIES", 10_000, int),
        "abuseipdb_enabled": _env_bool("SECOPS_ABUSEIPDB_ENABLED", False),
        "abuseipdb_api_key": os.getenv("ABUSEIPDB_API_KEY", ""),
        "virustotal_enabled": _env_bool("SECOPS_VIRUSTOTAL_ENABLED", False),
        "virustotal_api_key": os.getenv("VIRUSTOTAL_API_KEY", ""),
        "source_calls_per_minute": _env_number("SECOPS_SOURCE_CALLS_PER_MINUTE", 10, int),
        "request_timeout": _env_number("REQUEST_TIMEOUT", 10.0, float),
        "rate_limit_enabled": _env_bool("SECOPS_ALERT_RATE_LIMIT_ENABLED", True),
        "max_alerts_per_minute": _env_number("SECOPS_MAX_ALERTS_PER_MINUTE", 10, int),
        "grouping_enabled": _env_bool("SECOPS_ALERT_GROUPING_ENABLED", True),
        "grouping_window_seconds": _env_number("SECOPS_ALERT_GROUPING_WINDOW", 300.0, float),
        "queue_drain_interval_seconds": _env_number("SECOPS_QUEUE_DRAIN_INTERVAL", None, float),
        "channel_timeout_seconds": _env_number("SECOPS_CHANNEL_TIMEOUT", 15.0, float),
        "slack_enabled": _env_bool("SECOPS_SLACK_ENABLED", False),
        "slack_webhook_url": os.getenv("SLACK_WEBHOOK_URL", ""),
        "pagerduty_enabled": _env_bool("SECOPS_PAGERDUTY_ENABLED", False),
        "pagerduty_integration_key": os.getenv("PAGERDUTY_INTEGRATION_KEY", ""),
        "email_enabled": _env_bool("SECOPS_EMAIL_ENABLED", False),
        "smtp_host": os.getenv("SMTP_HOST", ""),
        "smtp_port": _env_number("SMTP_PORT", 587, int),
        "smtp_username": os.getenv("SMTP_USERNAME", ""),
        "smtp_password": os.getenv("SMTP_PASSWORD", ""),
        "smtp_use_ssl": _env_bool("SMTP_USE_SSL", False),
        "smtp_use_tls": _env_bool("SMTP_USE_TLS", True),
        "email_from": os.getenv("SECOPS_EMAIL_FROM", ""),
        "email_to": _env_list("SECOPS_EMAIL_TO"),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
    }

    rules_file = overrides.pop("rules_file", None) or os.getenv("SECOPS_RULES_FILE", "")
    if rules_file:
        values["rules"] = load_rules(rules_file)

    unknown = set(overrides) - set(Config.__dataclass_fields__)
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")
    for key, value in overrides.items():
        if value is None:
            continue
        values[key] = tuple(value) if isinstance(value, list) else value

    cfg = Config(**values)
    _validate(cfg)
    return cfg


def _validate(cfg: Config) -> None:
    if cfg.abuseipdb_enabled and not cfg.abuseipdb_api_key:
        raise ConfigError(
            "ABUSEIPDB_API_KEY is not set but AbuseIPDB is enabled. "
            "Add it to your .env file or export it as an environment variable."
        )
    if cfg.virustotal_enabled and not cfg.virustotal_api_key:
        raise ConfigError(
            "VIRUSTOTAL_API_KEY is not set but VirusTotal is enabled. "
            "Add it to your .env file or export it as an environment variable."
        )
    if cfg.slack_enabled and not cfg.slack_webhook_url:
        raise ConfigError("SLACK_WEBHOOK_URL is not set but Slack alerts are enabled.")
    if cfg.pagerduty_enabled and not cfg.pagerduty_integration_key:
        raise ConfigError("PAGERDUTY_INTEGRATION_KEY is not set but PagerDuty alerts are enabled.")
    if cfg.email_enabled and not (cfg.smtp_host and cfg.email_from and cfg.email_to):
        raise ConfigError("Email alerts need SMTP_HOST, SECOPS_EMAIL_FROM and SECOPS_EMAIL_TO.")
    if cfg.cache_ttl_seconds <= 0 or cfg.cache_max_entries < 1:
        raise ConfigError("SECOPS_CACHE_TTL and SECOPS_CACHE_MAX_ENTRIES must be positive")
    if cfg.max_alerts_per_minute < 1:
        raise ConfigError("SECOPS_MAX_ALERTS_PER_MINUTE must be at least 1")
    if cfg.sweep_interval_seconds <= 0:
        raise ConfigError("SECOPS_SWEEP_INTERVAL must be positive")
