from secops.models.alerts import Alert, DispatcherMetrics, DispatchStatus
from secops.models.blocking import (
    PERMANENT_BAN,
    BlockAction,
    BlockedEntry,
    BlockerMetrics,
    BlockRule,
    Severity,
)
from secops.models.reputation import CacheStats, IPReputation

__all__ = [
    "Alert",
    "BlockAction",
    "BlockedEntry",
    "BlockerMetrics",
    "BlockRule",
    "CacheStats",
    "DispatcherMetrics",
    "DispatchStatus",
    "IPReputation",
    "PERMANENT_BAN",
    "Severity",
]
