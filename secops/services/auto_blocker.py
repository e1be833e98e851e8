"""Sliding-window infraction tracking, blocking and escalation.

Per subject the state machine is::

    clean → watched → blocked (temporary) → blocked (permanent)
                         │                      │
                         └─ expiry / unblock ─┐ └─ manual unblock only
                                              ▼
                                            clean

The in-process record is authoritative.  Enforcement backends and alert
delivery run after the state transition and outside the per-subject lock;
their failures are logged and counted but never undo a decision.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from secops.enforcement.base import EnforcementBackend
from secops.errors import NotBlockedError, UnknownRuleError
from secops.models.alerts import Alert
from secops.models.blocking import BlockedEntry, BlockerMetrics, BlockRule
from secops.models.reputation import IPReputation
from secops.services.alert_dispatcher import AlertDispatcher
from secops.services.reputation import ReputationService
from secops.signals import Signal, SignalBus
from secops.utils.clock import Clock, seconds_from
from secops.utils.keyed_lock import KeyedLock
from secops.utils.logger import get_logger
from secops.utils.scheduler import ScheduledJob, Scheduler

logger = get_logger(__name__)

APPROACHING_RATIO = 0.8
ESCALATION_SUFFIX = " [ESCALATED TO PERMANENT]"


class AutoBlocker:
    """Counts infractions per subject and rule, and blocks on threshold.

    Args:
        rules: Rule set, identified by ``BlockRule.id``.
        whitelist: Subjects that are never blocked.
        backends: Enforcement backends called on every block and unblock.
        reputation: Optional reputation service used to weight alert severity.
        dispatcher: Optional dispatcher that receives block/escalation alerts.
        signals: Observer bus; a private one is created when omitted.
        clock: Time source for windows and expiries.
        enforcement_timeout_seconds: Upper bound for each backend call.
    """

    def __init__(
        self,
        rules: Iterable[BlockRule],
        whitelist: Iterable[str] = (),
        backends: Iterable[EnforcementBackend] = (),
        reputation: Optional[ReputationService] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        signals: Optional[SignalBus] = None,
        clock: Optional[Clock] = None,
        enforcement_timeout_seconds: float = 15.0,
    ) -> None:
        self._rules: Dict[str, BlockRule] = {}
        for rule in rules:
            if rule.id in self._rules:
                raise ValueError(f"duplicate rule id: {rule.id}")
            self._rules[rule.id] = rule
        self._whitelist: set[str] = set(whitelist)
        self._backends: List[EnforcementBackend] = list(backends)
        self._reputation = reputation
        self._dispatcher = dispatcher
        self.signals = signals or SignalBus()
        self._clock = clock or Clock()
        self.enforcement_timeout_seconds = enforcement_timeout_seconds

        # (subject, rule_id) → infraction timestamps, oldest first
        self._ledgers: Dict[Tuple[str, str], Deque[float]] = {}
        self._blocked: Dict[str, BlockedEntry] = {}
        # subjects escalated at least once; later blocks are permanent
        self._recidivists: set[str] = set()
        self._locks = KeyedLock()
        self._metrics = BlockerMetrics()
        self._sweep_job: Optional[ScheduledJob] = None

    # ------------------------------------------------------------------
    # Infractions
    # ------------------------------------------------------------------

    async def report_infraction(
        self,
        subject: str,
        rule_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Record one infraction; return True when the subject is (now) blocked.

        Raises:
            UnknownRuleError: If *rule_id* is not registered.
        """
        rule = self._rules.get(rule_id)
        if rule is None:
            raise UnknownRuleError(rule_id)

        if subject in self._whitelist:
            self._metrics.whitelist_hits += 1
            logger.debug("whitelist_hit", subject=subject, rule_id=rule_id)
            self.signals.emit(Signal.WHITELIST_HIT, {"subject": subject, "rule_id": rule_id})
            return False

        async with self._locks.acquire(subject):
            count = self._record(subject, rule)

            if count < rule.threshold:
                if count >= rule.threshold * APPROACHING_RATIO:
                    self.signals.emit(
                        Signal.THRESHOLD_APPROACHING,
                        {"subject": subject, "rule_id": rule_id, "infractions": count, "threshold": rule.threshold},
                    )
                return False

            existing = self._blocked.get(subject)
            if existing is None:
                entry = self._create_block(subject, rule, count, metadata)
                transition = Signal.BLOCK
            elif not existing.is_permanent:
                entry = self._escalate(existing)
                transition = Signal.BLOCK_ESCALATED
            else:
                return True

        if transition == Signal.BLOCK:
            await self._apply_enforcement(entry, rule)
        await self._raise_alert(entry, rule, transition, metadata)
        return True

    def _record(self, subject: str, rule: BlockRule) -> int:
        now = self._clock.time()
        ledger = self._ledgers.setdefault((subject, rule.id), deque())
        ledger.append(now)
        cutoff = now - rule.window_seconds
        while ledger and ledger[0] <= cutoff:
            ledger.popleft()
        return len(ledger)

    def _create_block(
        self, subject: str, rule: BlockRule, count: int, metadata: Optional[Dict[str, Any]]
    ) -> BlockedEntry:
        blocked_at = self._clock.now()
        permanent = rule.is_permanent or subject in self._recidivists
        entry = BlockedEntry(
            subject=subject,
            reason=f"Rule {rule.name} triggered: {count} infractions in {rule.window_seconds:g}s",
            blocked_at=blocked_at,
            expires_at=None if permanent else seconds_from(blocked_at, rule.ban_duration_seconds),
            rule_id=rule.id,
            infraction_count_at_block=count,
        )
        self._blocked[subject] = entry
        self._metrics.total_blocks += 1
        self._metrics.active_blocks += 1
        logger.warning(
            "subject_blocked",
            subject=subject,
            rule_id=rule.id,
            infractions=count,
            expires_at=entry.expires_at.isoformat() if entry.expires_at else None,
        )
        self.signals.emit(Signal.BLOCK, {"entry": entry.model_copy(), "metadata": metadata or {}})
        return entry

    def _escalate(self, entry: BlockedEntry) -> BlockedEntry:
        entry.expires_at = None
        entry.reason += ESCALATION_SUFFIX
        self._recidivists.add(entry.subject)
        self._metrics.escalations += 1
        logger.warning("block_escalated", subject=entry.subject, rule_id=entry.rule_id)
        self.signals.emit(Signal.BLOCK_ESCALATED, {"entry": entry.model_copy()})
        return entry

    # ------------------------------------------------------------------
    # Side effects (outside the per-subject lock)
    # ------------------------------------------------------------------

    async def _apply_enforcement(self, entry: BlockedEntry, rule: BlockRule) -> None:
        await self._run_backends("ban", entry.subject, [b.ban(entry.subject, rule) for b in self._backends])

    async def _remove_enforcement(self, subject: str) -> None:
        await self._run_backends("unban", subject, [b.unban(subject) for b in self._backends])

    async def _run_backends(self, action: str, subject: str, calls: List[Any]) -> None:
        if not calls:
            return
        results = await asyncio.gather(
            *(asyncio.wait_for(c, timeout=self.enforcement_timeout_seconds) for c in calls),
            return_exceptions=True,
        )
        for backend, result in zip(self._backends, results):
            if isinstance(result, BaseException):
                self._metrics.enforcement_failures += 1
                logger.error(
                    "enforcement_failed",
                    backend=backend.name,
                    action=action,
                    subject=subject,
                    error=str(result) or type(result).__name__,
                )

    async def _raise_alert(
        self,
        entry: BlockedEntry,
        rule: BlockRule,
        transition: Signal,
        metadata: Optional[Dict[str, Any]],
    ) -> None:
        if self._dispatcher is None:
            return

        severity = rule.severity
        alert_metadata: Dict[str, Any] = {
            "subject": entry.subject,
            "rule_id": rule.id,
            "infractions": entry.infraction_count_at_block,
            "expires_at": entry.expires_at.isoformat() if entry.expires_at else None,
            **(metadata or {}),
        }

        reputation = await self._lookup_reputation(entry.subject)
        if reputation is not None:
            alert_metadata["threatIntel"] = reputation.threat_intel()
            if reputation.is_malicious:
                severity = severity.raised()
        if transition == Signal.BLOCK_ESCALATED:
            severity = severity.raised()

        verb = "escalated to permanent" if transition == Signal.BLOCK_ESCALATED else "blocked"
        alert = Alert(
            timestamp=self._clock.now(),
            severity=severity,
            title=f"{entry.subject} {verb} by rule {rule.name}",
            description=f"{entry.subject} {verb}: {entry.reason}",
            source="auto-blocker",
            metadata=alert_metadata,
        )
        try:
            await self._dispatcher.send_alert(alert)
        except Exception as exc:
            logger.error("block_alert_failed", subject=entry.subject, error=str(exc))

    async def _lookup_reputation(self, subject: str) -> Optional[IPReputation]:
        if self._reputation is None:
            return None
        try:
            return await self._reputation.check_reputation(subject)
        except Exception as exc:
            logger.error("reputation_lookup_failed", subject=subject, error=str(exc))
            return None

    # ------------------------------------------------------------------
    # Unblocking
    # ------------------------------------------------------------------

    async def unblock_ip(self, subject: str, reason: str = "manual") -> None:
        """Lift the block on *subject* and forget its infractions.

        Raises:
            NotBlockedError: If *subject* has no active block.
        """
        async with self._locks.acquire(subject):
            if subject not in self._blocked:
                raise NotBlockedError(subject)
            self._remove(subject, reason)
        await self._remove_enforcement(subject)

    def _remove(self, subject: str, reason: str) -> None:
        del self._blocked[subject]
        for key in [k for k in self._ledgers if k[0] == subject]:
            del self._ledgers[key]
        self._metrics.total_unblocks += 1
        self._metrics.active_blocks -= 1
        logger.info("subject_unblocked", subject=subject, reason=reason)
        self.signals.emit(Signal.UNBLOCK, {"subject": subject, "reason": reason})

    async def sweep_expired(self, now: Optional[datetime] = None) -> List[str]:
        """Unblock every temporary block whose expiry has passed by *now*."""
        now = now or self._clock.now()
        candidates = [
            s for s, e in self._blocked.items() if e.expires_at is not None and e.expires_at <= now
        ]
        released: List[str] = []
        for subject in candidates:
            async with self._locks.acquire(subject):
                entry = self._blocked.get(subject)
                # re-check: escalated or unblocked while we waited
                if entry is None or entry.expires_at is None or entry.expires_at > now:
                    continue
                self._remove(subject, "expired")
            await self._remove_enforcement(subject)
            released.append(subject)

        self._prune_stale_ledgers()
        if released:
            logger.info("expired_blocks_swept", count=len(released))
        return released

    def _prune_stale_ledgers(self) -> None:
        now = self._clock.time()
        for key in list(self._ledgers):
            ledger = self._ledgers[key]
            rule = self._rules[key[1]]
            if not ledger or ledger[-1] <= now - rule.window_seconds:
                del self._ledgers[key]

    def start(self, scheduler: Scheduler, interval_seconds: float = 60.0) -> ScheduledJob:
        """Schedule :meth:`sweep_expired` every *interval_seconds*."""
        if self._sweep_job is not None and not self._sweep_job.cancelled:
            return self._sweep_job
        self._sweep_job = scheduler.every(interval_seconds, self.sweep_expired, name="expiry-sweep")
        return self._sweep_job

    def stop(self) -> None:
        if self._sweep_job is not None:
            self._sweep_job.cancel()
            self._sweep_job = None

    # ------------------------------------------------------------------
    # Whitelist
    # ------------------------------------------------------------------

    def add_to_whitelist(self, subject: str) -> None:
        self._whitelist.add(subject)
        self.signals.emit(Signal.WHITELIST_ADD, {"subject": subject})

    def remove_from_whitelist(self, subject: str) -> None:
        self._whitelist.discard(subject)
        self.signals.emit(Signal.WHITELIST_REMOVE, {"subject": subject})

    def get_whitelist(self) -> List[str]:
        return sorted(self._whitelist)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_blocked_subjects(self) -> List[BlockedEntry]:
        return [e.model_copy() for e in self._blocked.values()]

    def is_blocked(self, subject: str) -> bool:
        return subject in self._blocked

    def get_rules(self) -> List[BlockRule]:
        return list(self._rules.values())

    def infraction_count(self, subject: str, rule_id: str) -> int:
        """Infractions currently inside the rule window (without recording one)."""
        rule = self._rules.get(rule_id)
        if rule is None:
            raise UnknownRuleError(rule_id)
        cutoff = self._clock.time() - rule.window_seconds
        return sum(1 for ts in self._ledgers.get((subject, rule_id), ()) if ts > cutoff)

    def get_metrics(self) -> BlockerMetrics:
        return self._metrics.model_copy()

    def reset_metrics(self) -> None:
        self._metrics = BlockerMetrics(active_blocks=len(self._blocked))

    async def close(self) -> None:
        self.stop()
        for backend in self._backends:
            await backend.close()
