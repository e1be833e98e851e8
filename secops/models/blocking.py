"""Pydantic v2 models for block rules, block records and blocker metrics."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ban_duration_seconds value meaning "never expires"
PERMANENT_BAN = -1


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    def raised(self) -> "Severity":
        """One tier more severe, saturating at CRITICAL."""
        order = [Severity.INFO, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]
        return order[min(order.index(self) + 1, len(order) - 1)]


class BlockAction(str, Enum):
    RATE_LIMIT = "rate_limit"
    BAN_TEMP = "ban_temp"
    BAN_PERMANENT = "ban_permanent"


class BlockRule(BaseModel):
    """Threshold rule: *threshold* infractions within *window_seconds* → block."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    threshold: int = Field(ge=1)
    window_seconds: float = Field(gt=0)
    ban_duration_seconds: int = PERMANENT_BAN
    action: BlockAction = BlockAction.BAN_TEMP
    severity: Severity = Severity.MEDIUM

    @field_validator("ban_duration_seconds")
    @classmethod
    def _check_duration(cls, value: int) -> int:
        if value != PERMANENT_BAN and value <= 0:
            raise ValueError(f"ban_duration_seconds must be positive or {PERMANENT_BAN} (permanent)")
        return value

    @property
    def is_permanent(self) -> bool:
        return self.action == BlockAction.BAN_PERMANENT or self.ban_duration_seconds == PERMANENT_BAN


class BlockedEntry(BaseModel):
    """Active block on a subject.  ``expires_at is None`` means permanent."""

    subject: str
    reason: str
    blocked_at: datetime
    expires_at: Optional[datetime] = None
    rule_id: str
    infraction_count_at_block: int

    @property
    def is_permanent(self) -> bool:
        return self.expires_at is None


class BlockerMetrics(BaseModel):
    total_blocks: int = 0
    total_unblocks: int = 0
    active_blocks: int = 0
    whitelist_hits: int = 0
    escalations: int = 0
    enforcement_failures: int = 0
