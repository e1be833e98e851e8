"""
AbuseIPDB v2 reputation source.

Authentication
--------------
AbuseIPDB uses a ``Key`` header: the API key is supplied directly, no
bearer-token flow needed.

Verdict
-------
``abuseConfidenceScore`` is already 0-100; anything above 50 is treated
as malicious.  ``usageType`` (e.g. "Data Center/Web Hosting/Transit") is
the only category AbuseIPDB returns without the verbose report list.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from secops.errors import SourceUnavailableError
from secops.models.reputation import IPReputation
from secops.sources.base import ReputationSource
from secops.utils.logger import get_logger

logger = get_logger(__name__)

_ABUSE_BASE = "https://api.abuseipdb.com/api/v2"
MALICIOUS_THRESHOLD = 50


class AbuseIPDBSource(ReputationSource):
    name = "abuseipdb"

    def __init__(
        self,
        api_key: str,
        max_age_days: int = 90,
        base_url: str = _ABUSE_BASE,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(client=client, **kwargs)
        self._api_key = api_key
        self.max_age_days = max_age_days
        self.base_url = base_url.rstrip("/")

    async def lookup(self, subject: str) -> IPReputation:
        if not self._api_key:
            raise SourceUnavailableError(self.name, "API key not configured")

        logger.info("abuseipdb_lookup", subject=subject)
        body = await self._get_json(
            f"{self.base_url}/check",
            subject,
            params={"ipAddress": subject, "maxAgeInDays": self.max_age_days},
            headers={"Key": self._api_key, "Accept": "application/json"},
        )
        return parse_abuseipdb(subject, body)


def parse_abuseipdb(subject: str, body: Dict[str, Any]) -> IPReputation:
    """Build a verdict from an AbuseIPDB ``/check`` response body."""
    data = body.get("data")
    if not isinstance(data, dict) or "abuseConfidenceScore" not in data:
        raise SourceUnavailableError(AbuseIPDBSource.name, f"malformed response for {subject}")

    score = max(0, min(100, int(data["abuseConfidenceScore"])))
    last_reported = None
    if data.get("lastReportedAt"):
        try:
            last_reported = datetime.fromisoformat(data["lastReportedAt"].replace("Z", "+00:00"))
        except ValueError:
            logger.warning("abuseipdb_bad_timestamp", subject=subject, value=data["lastReportedAt"])

    return IPReputation(
        subject=subject,
        is_malicious=score > MALICIOUS_THRESHOLD,
        score=score,
        report_count=int(data.get("totalReports") or 0),
        categories=frozenset([data["usageType"]]) if data.get("usageType") else frozenset(),
        last_reported=last_reported,
        source=AbuseIPDBSource.name,
    )
