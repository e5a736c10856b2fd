"""
Evictor - Periodic cache sweep: byte budget first, then TTL.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Set

from .cache_config import CacheConfig
from .cache_metadata import CacheMetadataStore


@dataclass
class EvictionStats:
    """
    Statistics for one sweep.

    Attributes:
        bytes_before: Cache size when the sweep started
        bytes_after: Cache size when the sweep finished
        budget_evicted: Entries removed to get under the byte budget
        ttl_evicted: Entries removed for not being accessed within the TTL
        bytes_freed: Total bytes removed
        skipped_in_flight: Candidates skipped because they were being generated
        errors: Files that could not be deleted
    """
    bytes_before: int = 0
    bytes_after: int = 0
    budget_evicted: int = 0
    ttl_evicted: int = 0
    bytes_freed: int = 0
    skipped_in_flight: int = 0
    errors: int = 0
    adopted: int = 0
    pruned: int = 0
    persisted: bool = False
    start_time: float = field(default_factory=time.time)

    @property
    def evicted(self) -> int:
        return self.budget_evicted + self.ttl_evicted

    def __str__(self) -> str:
        return (
            f"{self.evicted} evicted ({self.budget_evicted} budget, {self.ttl_evicted} ttl), "
            f"{self.bytes_freed:,} bytes freed, {self.bytes_before:,} -> {self.bytes_after:,} bytes"
        )


class Evictor:
    """
    Keeps the thumbnail cache within its byte budget and drops cold entries.

    Budget phase: when the cache is over budget, entries are removed in
    ascending (access count, last access) order until the total falls to the
    target fraction of the budget. TTL phase: entries not accessed within the
    TTL are removed regardless of size.
    """

    def __init__(
        self,
        metadata: CacheMetadataStore,
        config: CacheConfig,
        in_flight: Optional[Callable[[], Set[str]]] = None,
        lock: Optional[threading.Lock] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            metadata: Shared cache metadata store
            config: Cache configuration (budget, target fraction, TTL)
            in_flight: Returns keys currently being generated; never evicted
            lock: Maintenance lock shared with the pregenerator
            logger: Optional logger instance
            clock: Time source returning epoch seconds
        """
        self.metadata = metadata
        self.config = config
        self.in_flight = in_flight or (lambda: set())
        self.lock = lock or threading.Lock()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def sweep(self) -> Optional[EvictionStats]:
        """
        Run one sweep.

        Returns:
            EvictionStats, or None if another maintenance task held the lock
        """
        if not self.lock.acquire(blocking=False):
            self.logger.info("Cache maintenance already running, skipping sweep")
            return None
        try:
            stats = EvictionStats()
            stats.adopted = self.metadata.adopt_untracked()
            stats.pruned = self.metadata.prune_missing()
            stats.bytes_before = self.metadata.total_bytes()

            self._evict_for_budget(stats)
            self._evict_expired(stats)

            stats.bytes_after = self.metadata.total_bytes()
            stats.persisted = self.metadata.persist_if_dirty()
            self.logger.info(f"Cache sweep: {stats}")
            return stats
        finally:
            self.lock.release()

    def _evict_for_budget(self, stats: EvictionStats) -> None:
        total = self.metadata.total_bytes()
        if total <= self.config.max_bytes:
            return

        target = int(self.config.max_bytes * self.config.target_fraction)
        self.logger.info(
            f"Cache over budget ({total:,} > {self.config.max_bytes:,} bytes), "
            f"shrinking to {target:,}"
        )
        in_flight = self.in_flight()
        ranked = sorted(self.metadata.entries(), key=lambda e: (e.access_count, e.last_accessed_at))
        for entry in ranked:
            if total <= target:
                break
            if entry.key in in_flight:
                stats.skipped_in_flight += 1
                continue
            freed = self.metadata.remove(entry.key)
            if freed is None:
                stats.errors += 1
                continue
            total -= freed
            stats.bytes_freed += freed
            stats.budget_evicted += 1

    def _evict_expired(self, stats: EvictionStats) -> None:
        cutoff = self.clock() - self.config.ttl_seconds
        in_flight = self.in_flight()
        for entry in self.metadata.entries():
            if entry.last_accessed_at >= cutoff:
                continue
            if entry.key in in_flight:
                stats.skipped_in_flight += 1
                continue
            freed = self.metadata.remove(entry.key)
            if freed is None:
                stats.errors += 1
                continue
            stats.bytes_freed += freed
            stats.ttl_evicted += 1
