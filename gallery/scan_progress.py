"""
ScanProgress - Tracks and displays reconciliation progress.
"""

import logging
import time
from typing import Dict, Optional

from .changeset import SourceError, SourceScanStats
from .picture_record import DataSource
from .scan_messages import ProgressReport
from .source_walker import Observation


class ScanProgress:
    """
    Tracks and displays scan progress with optional per-file output.
    """

    def __init__(
        self,
        show_files: bool = False,
        log_interval: int = 500,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize progress tracker.

        Args:
            show_files: If True, print each file as it's scanned
            log_interval: Log summary progress every N items (when not show_files)
            logger: Optional logger instance
        """
        self.show_files = show_files
        self.log_interval = log_interval
        self.logger = logger or logging.getLogger(__name__)
        self.source_counts: Dict[str, int] = {}
        self.last_progress: float = 0.0
        self.start_time: Optional[float] = None

    def on_source_start(self, source: DataSource) -> None:
        """Called when starting to walk a source."""
        if self.start_time is None:
            self.start_time = time.time()
        if self.show_files:
            print(f"\n=== Scanning source: {source.name} ({source.kind}) ===")
        else:
            self.logger.info(f"Scanning source: {source.name} ({source.kind})")

    def on_observation(self, source: DataSource, observation: Observation) -> None:
        """Called for every item a walker observes."""
        if self.start_time is None:
            self.start_time = time.time()
        self.source_counts[source.name] = self.source_counts.get(source.name, 0) + 1
        count = self.source_counts[source.name]

        if self.show_files:
            status = 'unchanged' if observation.unchanged else 'new or changed'
            print(f"  [{source.name}] {observation.identifier} - {status}")
        elif count % self.log_interval == 0:
            total = sum(self.source_counts.values())
            elapsed = time.time() - self.start_time
            rate = total / elapsed if elapsed > 0 else 0
            self.logger.info(
                f"  Progress: {count} in {source.name} "
                f"(total: {total:,}, {rate:.0f}/sec)"
            )

    def on_progress(self, report: ProgressReport) -> None:
        """Called with throttled overall progress (0 - 100)."""
        self.last_progress = report.progress
        self.logger.debug(f"{report.progress:.0f}% {report.status_text}")

    def on_source_error(self, error: SourceError) -> None:
        """Called when a source fails; other sources continue."""
        self.logger.warning(f"Source {error.source_name} failed ({error.kind}): {error.message}")

    def on_source_complete(self, stats: SourceScanStats) -> None:
        """Called when a source walk ends."""
        line = (
            f"{stats.source_name}: {stats.seen} seen, {stats.added} new, "
            f"{stats.updated} changed, {stats.deleted} removed"
        )
        if not stats.complete:
            line += " (incomplete, deletions skipped)"
        if self.show_files:
            print(f"--- {line} ---")
        else:
            self.logger.info(f"  {line}")

    def __call__(self, report: ProgressReport) -> None:
        """Allow use as callback."""
        self.on_progress(report)
