"""Reputation verdict model shared by every source adapter."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field


class IPReputation(BaseModel):
    """A source's opinion on a subject.

    ``is_malicious`` is decided by the adapter that produced the verdict,
    each applying its own score threshold; aggregators trust it as-is.
    """

    model_config = ConfigDict(frozen=True)

    subject: str
    is_malicious: bool = False
    score: int = Field(default=0, ge=0, le=100)
    report_count: int = Field(default=0, ge=0)
    categories: FrozenSet[str] = frozenset()
    last_reported: Optional[datetime] = None
    source: str = "none"

    @classmethod
    def unknown(cls, subject: str) -> "IPReputation":
        """Verdict returned when no source could answer."""
        return cls(subject=subject)

    def threat_intel(self) -> Dict[str, Any]:
        """Summary merged into enriched events under ``threatIntel``."""
        return {
            "isMalicious": self.is_malicious,
            "score": self.score,
            "reports": self.report_count,
            "categories": sorted(self.categories),
            "source": self.source,
        }


class CacheStats(BaseModel):
    keys: int = 0
    hits: int = 0
    misses: int = 0
