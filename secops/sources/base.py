"""Reputation source contract and shared HTTP plumbing."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from secops.errors import SourceUnavailableError
from secops.models.reputation import IPReputation
from secops.utils.logger import get_logger

logger = get_logger(__name__)


class ReputationSource(ABC):
    """One external opinion on a subject.

    Args:
        enabled: Disabled sources are skipped by the reputation service.
        calls_per_minute: Local quota enforced by the reputation service.
        timeout: Per-request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient`` (tests pass one wired to a
            ``MockTransport``); a private client is created otherwise.
    """

    name: str = "source"

    def __init__(
        self,
        enabled: bool = True,
        calls_per_minute: int = 10,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.enabled = enabled
        self.calls_per_minute = calls_per_minute
        self.timeout = timeout
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=timeout)

    @abstractmethod
    async def lookup(self, subject: str) -> IPReputation:
        """Return this source's verdict or raise SourceUnavailableError."""

    async def _get_json(self, url: str, subject: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._http.get(url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise SourceUnavailableError(self.name, f"timeout querying {subject}") from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailableError(self.name, f"transport error: {exc}") from exc

        if resp.status_code in (401, 403):
            raise SourceUnavailableError(self.name, f"API key rejected (HTTP {resp.status_code})")
        if resp.status_code == 429:
            raise SourceUnavailableError(
                self.name,
                f"upstream quota exhausted (Retry-After={resp.headers.get('Retry-After', '?')})",
            )
        if resp.status_code != 200:
            raise SourceUnavailableError(self.name, f"unexpected HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as exc:
            raise SourceUnavailableError(self.name, f"non-JSON body for {subject}") from exc

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(enabled={self.enabled}, calls_per_minute={self.calls_per_minute})"
