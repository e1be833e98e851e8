"""Alert model and dispatcher bookkeeping."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field

from secops.models.blocking import Severity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Alert(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    severity: Severity = Severity.MEDIUM
    title: str
    description: str = ""
    source: str = "secops"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DispatchStatus(str, Enum):
    SENT = "sent"
    GROUPED = "grouped"
    QUEUED = "queued"


class DispatcherMetrics(BaseModel):
    sent: int = 0
    grouped: int = 0
    rate_limited: int = 0
    queued: int = 0
    channel_failures: int = 0
