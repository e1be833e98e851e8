"""fail2ban enforcement via ``fail2ban-client``.

Critical rules land in the recidive jail, everything else in the
brute-force jail.  Unbanning walks every known jail because the subject may
have been banned by an earlier rule with a different severity; a jail that
does not hold the subject is not an error.
"""

from __future__ import annotations

from typing import Sequence

from secops.enforcement.base import EnforcementBackend, run_command, validate_ip
from secops.errors import EnforcementFailure
from secops.models.blocking import BlockRule, Severity
from secops.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_JAILS = ("secops-api-auth", "secops-brute-force", "secops-recidive")


class Fail2banBackend(EnforcementBackend):
    name = "fail2ban"

    def __init__(
        self,
        brute_force_jail: str = "secops-brute-force",
        recidive_jail: str = "secops-recidive",
        all_jails: Sequence[str] = DEFAULT_JAILS,
        client_binary: str = "fail2ban-client",
        timeout: float = 10.0,
    ) -> None:
        self.brute_force_jail = brute_force_jail
        self.recidive_jail = recidive_jail
        self.all_jails = tuple(dict.fromkeys([*all_jails, brute_force_jail, recidive_jail]))
        self.client_binary = client_binary
        self.timeout = timeout

    def jail_for(self, rule: BlockRule) -> str:
        return self.recidive_jail if rule.severity == Severity.CRITICAL else self.brute_force_jail

    async def ban(self, subject: str, rule: BlockRule) -> None:
        ip = validate_ip(self.name, subject)
        jail = self.jail_for(rule)
        await run_command(self.name, ip, [self.client_binary, "set", jail, "banip", ip], self.timeout)
        logger.info("fail2ban_banned", subject=ip, jail=jail)

    async def unban(self, subject: str) -> None:
        ip = validate_ip(self.name, subject)
        released = []
        for jail in self.all_jails:
            try:
                await run_command(self.name, ip, [self.client_binary, "set", jail, "unbanip", ip], self.timeout)
                released.append(jail)
            except EnforcementFailure as exc:
                logger.debug("fail2ban_unban_skipped", subject=ip, jail=jail, reason=exc.reason)
        if not released:
            raise EnforcementFailure(self.name, ip, "no jail accepted the unban")
        logger.info("fail2ban_unbanned", subject=ip, jails=released)
