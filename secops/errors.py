"""Exception taxonomy for the security-operations core.

Decision-layer errors (:class:`UnknownRuleError`, :class:`NotBlockedError`)
propagate to the caller.  Adapter-layer errors (reputation sources,
enforcement backends, notification channels) are raised by the adapters and
absorbed by the owning service, which logs and counts them.
"""

from __future__ import annotations


class SecOpsError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(SecOpsError, ValueError):
    """Raised when configuration values or rule files are invalid."""


# ---------------------------------------------------------------------------
# Decision layer
# ---------------------------------------------------------------------------


class UnknownRuleError(SecOpsError, KeyError):
    """Raised when an infraction references a rule id that is not registered."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Unknown rule: {rule_id}")
        self.rule_id = rule_id

    def __str__(self) -> str:
        return self.args[0]


class NotBlockedError(SecOpsError):
    """Raised when unblocking a subject that has no active block."""

    def __init__(self, subject: str) -> None:
        super().__init__(f"{subject} is not blocked")
        self.subject = subject


# ---------------------------------------------------------------------------
# Adapter layer
# ---------------------------------------------------------------------------


class SourceUnavailableError(SecOpsError):
    """A reputation source could not answer (network, auth or parse failure)."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Reputation source '{source}' unavailable: {reason}")
        self.source = source
        self.reason = reason


class RateLimitExceededError(SecOpsError):
    """The local per-minute quota for a reputation source is exhausted."""

    def __init__(self, source: str, limit: int) -> None:
        super().__init__(f"Reputation source '{source}' rate limit exceeded ({limit}/min)")
        self.source = source
        self.limit = limit


class EnforcementFailure(SecOpsError):
    """An enforcement backend failed to apply or remove a block."""

    def __init__(self, backend: str, subject: str, reason: str) -> None:
        super().__init__(f"Enforcement backend '{backend}' failed for {subject}: {reason}")
        self.backend = backend
        self.subject = subject
        self.reason = reason


class ChannelDeliveryFailure(SecOpsError):
    """A notification channel failed to deliver an alert."""

    def __init__(self, channel: str, alert_id: str, reason: str) -> None:
        super().__init__(f"Channel '{channel}' failed to deliver alert {alert_id}: {reason}")
        self.channel = channel
        self.alert_id = alert_id
        self.reason = reason
