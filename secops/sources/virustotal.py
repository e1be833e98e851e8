"""
VirusTotal v3 reputation source (``/api/v3/ip_addresses/{ip}``).

The score is the share of engines flagging the address as malicious,
scaled to 0-100.  VirusTotal engines are conservative, so the malicious
threshold (30) sits lower than AbuseIPDB's.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from secops.errors import SourceUnavailableError
from secops.models.reputation import IPReputation
from secops.sources.base import ReputationSource
from secops.utils.logger import get_logger

logger = get_logger(__name__)

_VT_BASE = "https://www.virustotal.com/api/v3"
MALICIOUS_THRESHOLD = 30


class VirusTotalSource(ReputationSource):
    name = "virustotal"

    def __init__(
        self,
        api_key: str,
        base_url: str = _VT_BASE,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(client=client, **kwargs)
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def lookup(self, subject: str) -> IPReputation:
        if not self._api_key:
            raise SourceUnavailableError(self.name, "API key not configured")

        logger.info("virustotal_lookup", subject=subject)
        body = await self._get_json(
            f"{self.base_url}/ip_addresses/{subject}",
            subject,
            headers={"x-apikey": self._api_key},
        )
        return parse_virustotal(subject, body)


def parse_virustotal(subject: str, body: Dict[str, Any]) -> IPReputation:
    try:
        attributes = body["data"]["attributes"]
        stats: Dict[str, int] = attributes.get("last_analysis_stats") or {}
    except (KeyError, TypeError, AttributeError) as exc:
        raise SourceUnavailableError(VirusTotalSource.name, f"malformed response for {subject}") from exc

    malicious = int(stats.get("malicious", 0) or 0)
    total = sum(int(v or 0) for v in stats.values())
    score = round(malicious / total * 100) if total > 0 else 0

    last_reported = None
    if attributes.get("last_analysis_date"):
        last_reported = datetime.fromtimestamp(int(attributes["last_analysis_date"]), tz=timezone.utc)

    return IPReputation(
        subject=subject,
        is_malicious=score > MALICIOUS_THRESHOLD,
        score=score,
        report_count=malicious,
        categories=frozenset(attributes.get("tags") or []),
        last_reported=last_reported,
        source=VirusTotalSource.name,
    )
