"""Tests for the fail2ban and iptables enforcement backends.

``asyncio.create_subprocess_exec`` is patched; no command is executed.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from secops.enforcement.base import run_command, validate_ip
from secops.enforcement.fail2ban import Fail2banBackend
from secops.enforcement.iptables import IptablesBackend
from secops.errors import EnforcementFailure

SUBPROCESS = "secops.enforcement.base.asyncio.create_subprocess_exec"


def _proc(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


def _argv(mock_exec: AsyncMock) -> list:
    return [list(c.args) for c in mock_exec.call_args_list]


class TestValidateIp:
    def test_ipv4(self):
        assert validate_ip("fw", "10.0.0.1") == "10.0.0.1"

    def test_ipv6_is_canonicalised(self):
        assert validate_ip("fw", "2001:DB8:0:0::1") == "2001:db8::1"

    @pytest.mark.parametrize("subject", ["not-an-ip", "10.0.0.1; rm -rf /", "", "user@example.com"])
    def test_rejects_non_addresses(self, subject):
        with pytest.raises(EnforcementFailure, match="not an IP address"):
            validate_ip("fw", subject)


class TestRunCommand:
    def test_returns_stdout(self):
        with patch(SUBPROCESS, AsyncMock(return_value=_proc(stdout=b"1\n"))):
            assert asyncio.run(run_command("fw", "10.0.0.1", ["true"], timeout=1)) == "1\n"

    def test_non_zero_exit_carries_stderr(self):
        with patch(SUBPROCESS, AsyncMock(return_value=_proc(returncode=255, stderr=b"jail not found"))):
            with pytest.raises(EnforcementFailure, match="jail not found"):
                asyncio.run(run_command("fw", "10.0.0.1", ["false"], timeout=1))

    def test_missing_binary(self):
        with patch(SUBPROCESS, AsyncMock(side_effect=FileNotFoundError("no such file"))):
            with pytest.raises(EnforcementFailure, match="cannot execute"):
                asyncio.run(run_command("fw", "10.0.0.1", ["fail2ban-client"], timeout=1))

    def test_timeout_kills_process(self):
        proc = _proc()

        async def hang():
            await asyncio.sleep(5)

        proc.communicate = hang
        with patch(SUBPROCESS, AsyncMock(return_value=proc)):
            with pytest.raises(EnforcementFailure, match="timed out"):
                asyncio.run(run_command("fw", "10.0.0.1", ["sleep"], timeout=0.01))
        proc.kill.assert_called_once()


class TestFail2banBackend:
    def test_ban_uses_brute_force_jail(self, brute_force_rule):
        mock_exec = AsyncMock(return_value=_proc())
        with patch(SUBPROCESS, mock_exec):
            asyncio.run(Fail2banBackend().ban("10.0.0.1", brute_force_rule))
        assert _argv(mock_exec) == [["fail2ban-client", "set", "secops-brute-force", "banip", "10.0.0.1"]]

    def test_critical_rule_uses_recidive_jail(self, exploit_rule):
        assert Fail2banBackend().jail_for(exploit_rule) == "secops-recidive"

    def test_unban_walks_every_jail(self):
        # first jail does not hold the address, the others do
        mock_exec = AsyncMock(side_effect=[_proc(returncode=1, stderr=b"not banned"), _proc(), _proc()])
        with patch(SUBPROCESS, mock_exec):
            asyncio.run(Fail2banBackend().unban("10.0.0.1"))
        assert [argv[2] for argv in _argv(mock_exec)] == [
            "secops-api-auth",
            "secops-brute-force",
            "secops-recidive",
        ]

    def test_unban_fails_when_no_jail_accepts(self):
        with patch(SUBPROCESS, AsyncMock(return_value=_proc(returncode=1))):
            with pytest.raises(EnforcementFailure, match="no jail accepted"):
                asyncio.run(Fail2banBackend().unban("10.0.0.1"))

    def test_invalid_subject_never_reaches_subprocess(self, brute_force_rule):
        mock_exec = AsyncMock()
        with patch(SUBPROCESS, mock_exec):
            with pytest.raises(EnforcementFailure):
                asyncio.run(Fail2banBackend().ban("bad host", brute_force_rule))
        mock_exec.assert_not_called()


class TestIptablesBackend:
    def test_ban_inserts_drop_rule(self, brute_force_rule):
        mock_exec = AsyncMock(return_value=_proc())
        with patch(SUBPROCESS, mock_exec):
            asyncio.run(IptablesBackend().ban("10.0.0.1", brute_force_rule))
        assert _argv(mock_exec) == [["iptables", "-I", "INPUT", "-s", "10.0.0.1", "-j", "DROP"]]

    def test_unban_deletes_drop_rule(self):
        mock_exec = AsyncMock(return_value=_proc())
        with patch(SUBPROCESS, mock_exec):
            asyncio.run(IptablesBackend(chain="SECOPS").unban("10.0.0.1"))
        assert _argv(mock_exec) == [["iptables", "-D", "SECOPS", "-s", "10.0.0.1", "-j", "DROP"]]

    def test_ipv6_uses_ip6tables(self, brute_force_rule):
        mock_exec = AsyncMock(return_value=_proc())
        with patch(SUBPROCESS, mock_exec):
            asyncio.run(IptablesBackend().ban("2001:db8::1", brute_force_rule))
        assert _argv(mock_exec)[0][0] == "ip6tables"

    def test_failure_surfaces_as_enforcement_failure(self, brute_force_rule):
        with patch(SUBPROCESS, AsyncMock(return_value=_proc(returncode=1, stderr=b"Permission denied"))):
            with pytest.raises(EnforcementFailure) as exc_info:
                asyncio.run(IptablesBackend().ban("10.0.0.1", brute_force_rule))
        assert exc_info.value.backend == "iptables"
        assert "Permission denied" in exc_info.value.reason
