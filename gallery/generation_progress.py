"""
GenerationProgress - Tracks and displays pregeneration progress.
"""

import logging
from typing import Optional

from .generation_stats import GenerationStats


class GenerationProgress:
    """
    Tracks and displays pregeneration progress with optional per-file output.
    """

    def __init__(
        self,
        show_files: bool = False,
        log_interval: int = 50,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize progress tracker.

        Args:
            show_files: If True, print each thumbnail as it's generated
            log_interval: Log summary progress every N pictures (when not show_files)
            logger: Optional logger instance
        """
        self.show_files = show_files
        self.log_interval = log_interval
        self.logger = logger or logging.getLogger(__name__)
        self.last_logged = 0

    def on_generated(self, source: str, identifier: str, tier: int) -> None:
        if self.show_files:
            print(f"  [OK] {source}/{identifier} -> {tier}px")

    def on_failed(self, source: str, identifier: str, error: str) -> None:
        if self.show_files:
            print(f"  [ERROR] {source}/{identifier} -> {error}")

    def on_batch_complete(self, stats: GenerationStats) -> None:
        """
        Called after each batch to report overall progress.

        Args:
            stats: Current generation statistics
        """
        if not self.show_files and stats.pictures - self.last_logged >= self.log_interval:
            self.last_logged = stats.pictures
            self.logger.info(
                f"Pregeneration: {stats.generated} generated, {stats.errors} errors "
                f"({stats.rate_per_minute:.1f}/min, {stats.remaining_count} pictures left)"
            )

    def __call__(self, stats: GenerationStats) -> None:
        """Allow use as callback for stats updates."""
        self.on_batch_complete(stats)
