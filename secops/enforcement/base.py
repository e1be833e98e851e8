"""Enforcement backend contract and shared subprocess helper."""

from __future__ import annotations

import asyncio
import ipaddress
from abc import ABC, abstractmethod
from typing import Sequence

from secops.errors import EnforcementFailure
from secops.models.blocking import BlockRule
from secops.utils.logger import get_logger

logger = get_logger(__name__)


class EnforcementBackend(ABC):
    """Something that actually restricts a blocked subject (firewall, ban list).

    Implementations raise :class:`EnforcementFailure` when they cannot apply
    or remove a block.  The auto-blocker calls every registered backend
    independently and never lets a failure roll back its own state.
    """

    name: str = "backend"

    @abstractmethod
    async def ban(self, subject: str, rule: BlockRule) -> None:
        ...

    @abstractmethod
    async def unban(self, subject: str) -> None:
        ...

    async def close(self) -> None:
        return None


def validate_ip(backend: str, subject: str) -> str:
    """Return the canonical form of *subject* or raise EnforcementFailure.

    Command-line backends only ever receive parsed addresses.
    """
    try:
        return str(ipaddress.ip_address(subject))
    except ValueError:
        raise EnforcementFailure(backend, subject, "not an IP address") from None


async def run_command(backend: str, subject: str, argv: Sequence[str], timeout: float) -> str:
    """Run *argv* without a shell and return stdout.

    Raises:
        EnforcementFailure: On a missing binary, timeout or non-zero exit.
    """
    logger.debug("enforcement_command", backend=backend, argv=list(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise EnforcementFailure(backend, subject, f"cannot execute {argv[0]}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise EnforcementFailure(backend, subject, f"{argv[0]} timed out after {timeout}s") from None

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
        raise EnforcementFailure(backend, subject, detail)
    return stdout.decode(errors="replace")
