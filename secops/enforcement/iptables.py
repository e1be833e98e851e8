"""iptables DROP rules on the INPUT chain."""

from __future__ import annotations

import ipaddress

from secops.enforcement.base import EnforcementBackend, run_command, validate_ip
from secops.models.blocking import BlockRule
from secops.utils.logger import get_logger

logger = get_logger(__name__)


class IptablesBackend(EnforcementBackend):
    name = "iptables"

    def __init__(self, chain: str = "INPUT", timeout: float = 10.0) -> None:
        self.chain = chain
        self.timeout = timeout

    @staticmethod
    def _binary_for(ip: str) -> str:
        return "ip6tables" if ipaddress.ip_address(ip).version == 6 else "iptables"

    async def ban(self, subject: str, rule: BlockRule) -> None:
        ip = validate_ip(self.name, subject)
        argv = [self._binary_for(ip), "-I", self.chain, "-s", ip, "-j", "DROP"]
        await run_command(self.name, ip, argv, self.timeout)
        logger.info("iptables_banned", subject=ip, chain=self.chain, rule_id=rule.id)

    async def unban(self, subject: str) -> None:
        ip = validate_ip(self.name, subject)
        argv = [self._binary_for(ip), "-D", self.chain, "-s", ip, "-j", "DROP"]
        await run_command(self.name, ip, argv, self.timeout)
        logger.info("iptables_unbanned", subject=ip, chain=self.chain)
