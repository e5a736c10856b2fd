"""
IdlePregenerator - Warms the thumbnail cache while nobody is browsing.
"""

import logging
import threading
from collections import deque
from typing import Deque, Iterable, Optional, Tuple

from .cache_config import CacheConfig
from .cache_metadata import CacheMetadataStore
from .errors import GalleryError
from .generation_progress import GenerationProgress
from .generation_stats import GenerationStats
from .thumbnail_cache import ThumbnailCache
from .tiering import cache_key

QueueItem = Tuple[str, str]


class IdlePregenerator:
    """
    FIFO queue of (source name, identifier) pairs whose missing tiers are
    generated in small batches whenever the cache has been idle.

    Pregenerated thumbnails are recorded without an access, so they neither
    count as activity nor look popular to the evictor.
    """

    def __init__(
        self,
        cache: ThumbnailCache,
        metadata: CacheMetadataStore,
        config: CacheConfig,
        lock: Optional[threading.Lock] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.cache = cache
        self.metadata = metadata
        self.config = config
        self.lock = lock or threading.Lock()
        self.logger = logger or logging.getLogger(__name__)
        self.queue: Deque[QueueItem] = deque()
        self._queue_lock = threading.Lock()
        self._stop_event = threading.Event()

    def seed(self, items: Iterable[QueueItem]) -> int:
        """
        Replace the queue with pictures that still miss at least one tier.

        Returns:
            Number of queued pictures
        """
        pending = [
            (source, identifier) for source, identifier in items
            if not all(self.metadata.contains(cache_key(source, identifier, t)) for t in self.config.tiers)
        ]
        with self._queue_lock:
            self.queue = deque(pending)
        self.logger.info(f"Pregeneration queue seeded with {len(pending):,} pictures")
        return len(pending)

    def __len__(self) -> int:
        return len(self.queue)

    def stop(self) -> None:
        """Stop after the current picture."""
        self._stop_event.set()

    def run_once(
        self,
        force: bool = False,
        max_batches: Optional[int] = None,
        progress: Optional[GenerationProgress] = None
    ) -> Optional[GenerationStats]:
        """
        Process batches while the cache stays idle and the queue is non-empty.

        Args:
            force: Ignore the idleness check
            max_batches: Stop after this many batches (None = until drained)
            progress: Optional progress tracker

        Returns:
            GenerationStats, or None when nothing ran
        """
        if not self.queue:
            return None
        if not force and not self.metadata.is_idle(self.config.idle_seconds):
            self.logger.debug("Cache busy, postponing pregeneration")
            return None
        if not self.lock.acquire(blocking=False):
            self.logger.debug("Cache maintenance already running, postponing pregeneration")
            return None

        try:
            stats = GenerationStats(queued=len(self.queue))
            while self.queue and not self._stop_event.is_set():
                if not force and not self.metadata.is_idle(self.config.idle_seconds):
                    self.logger.info("Cache became busy, pausing pregeneration")
                    break

                self._run_batch(stats, progress)
                stats.batches += 1
                self.metadata.persist_if_dirty()
                if progress:
                    progress.on_batch_complete(stats)

                if max_batches is not None and stats.batches >= max_batches:
                    break
                if self.queue and self.config.batch_delay > 0:
                    if self._stop_event.wait(self.config.batch_delay):
                        break

            self.logger.info(
                f"Pregeneration: {stats.generated} generated, {stats.skipped} skipped, "
                f"{stats.errors} errors in {stats.batches} batches, {len(self.queue)} left"
            )
            return stats
        finally:
            self.lock.release()

    def _pop_batch(self):
        with self._queue_lock:
            batch = []
            while self.queue and len(batch) < self.config.batch_size:
                batch.append(self.queue.popleft())
            return batch

    def _run_batch(self, stats: GenerationStats, progress: Optional[GenerationProgress]) -> None:
        for source, identifier in self._pop_batch():
            stats.pictures += 1
            for tier in self.config.tiers:
                if self.metadata.contains(cache_key(source, identifier, tier)):
                    stats.skipped += 1
                    continue
                try:
                    result = self.cache.ensure(source, identifier, tier, accessed=False)
                except GalleryError as e:
                    message = f"Error pregenerating {source}/{identifier}: {e}"
                    self.logger.warning(message)
                    stats.errors += 1
                    stats.error_details.append(message)
                    if progress:
                        progress.on_failed(source, identifier, str(e))
                    break
                if result.generated:
                    stats.generated += 1
                    entry = self.metadata.get(result.key)
                    stats.bytes_generated += entry.size if entry else 0
                    if progress:
                        progress.on_generated(source, identifier, tier)
                else:
                    stats.skipped += 1
