"""Tests for environment-driven configuration and rule files."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from secops.errors import ConfigError
from secops.models.blocking import PERMANENT_BAN, BlockAction, Severity
from secops.utils.config import DEFAULT_RULES, Config, load_config, load_rules


@pytest.fixture()
def clean_env():
    with patch.dict(os.environ, {}, clear=True):
        yield


@pytest.fixture()
def rules_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "ssh",
                    "name": "SSH brute force",
                    "threshold": 3,
                    "window_seconds": 30,
                    "ban_duration_seconds": 120,
                    "severity": "high",
                },
                {
                    "id": "sqli",
                    "name": "SQL injection",
                    "threshold": 1,
                    "window_seconds": 3600,
                    "action": "ban_permanent",
                    "severity": "critical",
                },
            ]
        )
    )
    return path


class TestDefaults:
    def test_defaults(self, clean_env):
        cfg = load_config()
        assert cfg.rules == DEFAULT_RULES
        assert cfg.whitelist == ()
        assert cfg.max_alerts_per_minute == 10
        assert cfg.grouping_window_seconds == 300.0
        assert cfg.cache_ttl_seconds == 3600.0
        assert cfg.sweep_interval_seconds == 60.0
        assert cfg.queue_drain_interval_seconds is None
        assert cfg.abuseipdb_enabled is False

    def test_default_rules(self):
        by_id = {r.id: r for r in DEFAULT_RULES}
        assert by_id["auth-brute-force"].threshold == 5
        assert by_id["auth-brute-force"].ban_duration_seconds == 300
        assert by_id["exploit-attempt"].is_permanent is True

    def test_config_is_frozen(self, clean_env):
        cfg = load_config()
        with pytest.raises(Exception):
            cfg.max_alerts_per_minute = 99  # type: ignore[misc]

    def test_secrets_not_in_repr(self, clean_env):
        cfg = load_config(abuseipdb_enabled=True, abuseipdb_api_key="super-secret-key")
        assert "super-secret-key" not in repr(cfg)


class TestEnvironment:
    def test_reads_env_vars(self):
        env = {
            "SECOPS_WHITELIST": "10.0.0.1, 10.0.0.2,",
            "SECOPS_MAX_ALERTS_PER_MINUTE": "25",
            "SECOPS_ALERT_GROUPING_ENABLED": "false",
            "SECOPS_CACHE_TTL": "120",
            "SECOPS_VIRUSTOTAL_ENABLED": "yes",
            "VIRUSTOTAL_API_KEY": "vt-key",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = load_config()
        assert cfg.whitelist == ("10.0.0.1", "10.0.0.2")
        assert cfg.max_alerts_per_minute == 25
        assert cfg.grouping_enabled is False
        assert cfg.cache_ttl_seconds == 120.0
        assert cfg.virustotal_enabled is True
        assert cfg.virustotal_api_key == "vt-key"

    def test_malformed_number(self):
        with patch.dict(os.environ, {"SECOPS_MAX_ALERTS_PER_MINUTE": "lots"}, clear=True):
            with pytest.raises(ConfigError, match="SECOPS_MAX_ALERTS_PER_MINUTE"):
                load_config()

    def test_rules_file_from_env(self, rules_file):
        with patch.dict(os.environ, {"SECOPS_RULES_FILE": str(rules_file)}, clear=True):
            cfg = load_config()
        assert [r.id for r in cfg.rules] == ["ssh", "sqli"]


class TestOverrides:
    def test_override_beats_env(self):
        with patch.dict(os.environ, {"SECOPS_MAX_ALERTS_PER_MINUTE": "25"}, clear=True):
            cfg = load_config(max_alerts_per_minute=3)
        assert cfg.max_alerts_per_minute == 3

    def test_none_override_is_ignored(self, clean_env):
        assert load_config(max_alerts_per_minute=None).max_alerts_per_minute == 10

    def test_list_override_becomes_tuple(self, clean_env):
        assert load_config(whitelist=["10.0.0.1"]).whitelist == ("10.0.0.1",)

    def test_unknown_key(self, clean_env):
        with pytest.raises(ConfigError, match="unknown configuration keys: bogus"):
            load_config(bogus=1)

    def test_rules_file_override(self, clean_env, rules_file):
        cfg = load_config(rules_file=str(rules_file))
        assert cfg.rules[0].threshold == 3


class TestValidation:
    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"abuseipdb_enabled": True}, "ABUSEIPDB_API_KEY"),
            ({"virustotal_enabled": True}, "VIRUSTOTAL_API_KEY"),
            ({"slack_enabled": True}, "SLACK_WEBHOOK_URL"),
            ({"pagerduty_enabled": True}, "PAGERDUTY_INTEGRATION_KEY"),
            ({"email_enabled": True, "smtp_host": "smtp.example.com"}, "SMTP_HOST"),
            ({"max_alerts_per_minute": 0}, "at least 1"),
            ({"cache_max_entries": 0}, "SECOPS_CACHE_MAX_ENTRIES"),
            ({"sweep_interval_seconds": 0}, "must be positive"),
        ],
    )
    def test_invalid(self, clean_env, overrides, message):
        with pytest.raises(ConfigError, match=message):
            load_config(**overrides)

    def test_config_error_is_a_value_error(self, clean_env):
        with pytest.raises(ValueError):
            load_config(max_alerts_per_minute=0)


class TestLoadRules:
    def test_parses_rules(self, rules_file):
        ssh, sqli = load_rules(rules_file)
        assert ssh.severity == Severity.HIGH
        assert ssh.action == BlockAction.BAN_TEMP
        assert sqli.ban_duration_seconds == PERMANENT_BAN
        assert sqli.is_permanent is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read"):
            load_rules(tmp_path / "missing.json")

    def test_not_json(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("rules: []")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_rules(path)

    def test_invalid_rule(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([{"id": "x", "name": "x", "threshold": 0, "window_seconds": 60}]))
        with pytest.raises(ConfigError, match="invalid rule"):
            load_rules(path)

    def test_invalid_ban_duration(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps([{"id": "x", "name": "x", "threshold": 1, "window_seconds": 60, "ban_duration_seconds": 0}])
        )
        with pytest.raises(ConfigError, match="invalid rule"):
            load_rules(path)

    def test_duplicate_ids(self, tmp_path):
        rule = {"id": "x", "name": "x", "threshold": 1, "window_seconds": 60}
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([rule, rule]))
        with pytest.raises(ConfigError, match="duplicate rule ids"):
            load_rules(path)

    def test_empty(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("[]")
        with pytest.raises(ConfigError, match="no rules"):
            load_rules(path)


def test_config_dataclass_defaults_match_loader(clean_env):
    assert Config().max_alerts_per_minute == load_config().max_alerts_per_minute
