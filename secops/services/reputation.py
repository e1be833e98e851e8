"""Composite reputation lookups: cache → local blacklist → external sources."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from cachetools import TTLCache

from secops.errors import RateLimitExceededError, SourceUnavailableError
from secops.models.reputation import CacheStats, IPReputation
from secops.sources.base import ReputationSource
from secops.utils.clock import Clock
from secops.utils.keyed_lock import KeyedLock
from secops.utils.logger import get_logger
from secops.utils.rate_limiter import SlidingWindowRateLimiter

logger = get_logger(__name__)


class ReputationService:
    """Answers "is this subject known-bad?".

    Sources are queried in the order given.  Each has its own one-minute
    quota tracked here, independently of the source's upstream limits.  A
    source that is over quota, unreachable or misconfigured abstains and the
    next one is asked.

    Args:
        sources: External sources in priority order.
        blacklist: Subjects treated as malicious without asking anyone.
        cache_enabled: Disable to always resolve afresh.
        cache_ttl_seconds: Lifetime of a cached verdict.
        cache_max_entries: Upper bound on cached verdicts; the least recently
            used entry is evicted first.
        clock: Time source shared by the cache and the rate limiters.
    """

    def __init__(
        self,
        sources: Iterable[ReputationSource] = (),
        blacklist: Iterable[str] = (),
        cache_enabled: bool = True,
        cache_ttl_seconds: float = 3600.0,
        cache_max_entries: int = 10_000,
        clock: Clock | None = None,
    ) -> None:
        self._clock = clock or Clock()
        self._sources: List[ReputationSource] = list(sources)
        self._limiters: Dict[str, SlidingWindowRateLimiter] = {
            s.name: SlidingWindowRateLimiter(s.calls_per_minute, 60.0, self._clock) for s in self._sources
        }
        self._blacklist: set[str] = set(blacklist)
        self._cache: Optional[TTLCache] = (
            TTLCache(maxsize=cache_max_entries, ttl=cache_ttl_seconds, timer=self._clock.time)
            if cache_enabled
            else None
        )
        self.cache_hits = 0
        self.cache_misses = 0
        self._locks = KeyedLock()
        self.source_failures: Dict[str, int] = {s.name: 0 for s in self._sources}

    @property
    def sources(self) -> List[ReputationSource]:
        return list(self._sources)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def check_reputation(self, subject: str) -> IPReputation:
        cached = self._cache_get(subject)
        if cached is not None:
            return cached

        # Concurrent lookups of one subject share a single upstream query
        async with self._locks.acquire(subject):
            if self._cache is not None:
                cached = self._cache.get(subject)
                if cached is not None:
                    return cached
            return await self._resolve(subject)

    async def _resolve(self, subject: str) -> IPReputation:
        if subject in self._blacklist:
            verdict = IPReputation(
                subject=subject,
                is_malicious=True,
                score=100,
                report_count=1,
                categories=frozenset({"custom_blacklist"}),
                last_reported=self._clock.now(),
                source="custom",
            )
            self._cache_set(subject, verdict)
            return verdict

        last_verdict: Optional[IPReputation] = None
        abstained = False
        for source in self._sources:
            if not source.enabled:
                continue
            try:
                verdict = await self._query(source, subject)
            except (SourceUnavailableError, RateLimitExceededError) as exc:
                self.source_failures[source.name] += 1
                abstained = True
                logger.warning("reputation_source_abstained", source=source.name, subject=subject, error=str(exc))
                continue
            except Exception as exc:
                self.source_failures[source.name] += 1
                abstained = True
                logger.error("reputation_source_error", source=source.name, subject=subject, error=str(exc))
                continue

            if verdict.is_malicious:
                self._cache_set(subject, verdict)
                logger.info("reputation_malicious", subject=subject, source=source.name, score=verdict.score)
                return verdict
            last_verdict = verdict

        if last_verdict is not None:
            self._cache_set(subject, last_verdict)
            return last_verdict

        # A transient outage must not pin "unknown" for a whole TTL
        default = IPReputation.unknown(subject)
        if not abstained:
            self._cache_set(subject, default)
        return default

    async def _query(self, source: ReputationSource, subject: str) -> IPReputation:
        limiter = self._limiters[source.name]
        if not limiter.try_acquire():
            raise RateLimitExceededError(source.name, limiter.max_calls)
        return await source.lookup(subject)

    async def enrich_event(
        self, event: Dict[str, Any], subject_field: str = "ip"
    ) -> Tuple[IPReputation, Dict[str, Any]]:
        """Return the subject's verdict and a copy of *event* carrying ``threatIntel``.

        Raises:
            ValueError: If *event* has no *subject_field*.
        """
        subject = event.get(subject_field)
        if not subject:
            raise ValueError(f"event has no '{subject_field}' field to enrich")
        reputation = await self.check_reputation(str(subject))
        enriched = {**event, "threatIntel": reputation.threat_intel()}
        return reputation, enriched

    # ------------------------------------------------------------------
    # Blacklist
    # ------------------------------------------------------------------

    def add_to_blacklist(self, subject: str) -> None:
        self._blacklist.add(subject)
        self._cache_delete(subject)
        logger.info("blacklist_add", subject=subject)

    def remove_from_blacklist(self, subject: str) -> None:
        self._blacklist.discard(subject)
        self._cache_delete(subject)
        logger.info("blacklist_remove", subject=subject)

    def get_blacklist(self) -> List[str]:
        return sorted(self._blacklist)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_get(self, subject: str) -> Optional[IPReputation]:
        if self._cache is None:
            return None
        cached = self._cache.get(subject)
        if cached is None:
            self.cache_misses += 1
        else:
            self.cache_hits += 1
        return cached

    def _cache_set(self, subject: str, verdict: IPReputation) -> None:
        # TTLCache drops expired entries on every insert
        if self._cache is not None:
            self._cache[subject] = verdict

    def _cache_delete(self, subject: str) -> None:
        if self._cache is not None:
            self._cache.pop(subject, None)

    def get_cache_stats(self) -> CacheStats:
        if self._cache is None:
            return CacheStats()
        self._cache.expire()
        return CacheStats(keys=len(self._cache), hits=self.cache_hits, misses=self.cache_misses)

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def close(self) -> None:
        for source in self._sources:
            await source.close()
