"""
Reporter - Generates human-readable reports from inventory and cache data.
"""

import logging
import sys
from typing import Optional, TextIO

from .cache_config import CacheConfig
from .cache_metadata import CacheMetadataStore
from .changeset import Changeset
from .inventory import Inventory


class Reporter:
    """
    Generates human-readable reports from inventory and cache data.
    """

    def __init__(
        self,
        output: Optional[TextIO] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize reporter.

        Args:
            output: Output stream (default: stdout)
            logger: Optional logger instance
        """
        self.output = output or sys.stdout
        self.logger = logger or logging.getLogger(__name__)

    def _print(self, text: str = "") -> None:
        """Print to output stream."""
        print(text, file=self.output)

    def _format_bytes(self, bytes_val: float) -> str:
        """Format bytes as human-readable string."""
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if bytes_val < 1024:
                return f"{bytes_val:.1f} {unit}"
            bytes_val /= 1024
        return f"{bytes_val:.1f} PB"

    def report_summary(self, inventory: Inventory) -> None:
        """Print one line per source plus totals."""
        stats = inventory.source_stats()

        self._print("=" * 72)
        self._print("INVENTORY SUMMARY")
        self._print("=" * 72)
        self._print(f"  Created:     {inventory.created_at}")
        self._print(f"  Updated:     {inventory.updated_at or 'never'}")
        self._print(f"  Sources:     {len(inventory.sources)}")
        self._print(f"  Pictures:    {inventory.total_pictures:,}")
        self._print()

        if not stats:
            self._print("  No sources configured.")
            return

        self._print(f"  {'Source':<28} {'Kind':<8} {'Pictures':>10} {'Size':>12} {'Dims':>7}")
        self._print("  " + "-" * 68)
        for name in sorted(stats):
            entry = stats[name]
            self._print(
                f"  {name[:28]:<28} {entry.kind:<8} {entry.total_pictures:>10,} "
                f"{self._format_bytes(entry.total_bytes):>12} {entry.dimension_coverage:>6.1f}%"
            )

    def report_cache(self, metadata: CacheMetadataStore, config: CacheConfig) -> None:
        """Print thumbnail cache usage against the budget."""
        entries = metadata.entries()
        total = sum(e.size for e in entries)
        budget_pct = (total / config.max_bytes * 100) if config.max_bytes else 0.0
        never_accessed = sum(1 for e in entries if e.access_count == 0)

        self._print()
        self._print("THUMBNAIL CACHE")
        self._print("-" * 72)
        self._print(f"  Directory:   {config.cache_dir}")
        self._print(f"  Entries:     {len(entries):,} ({never_accessed:,} never accessed)")
        self._print(
            f"  Size:        {self._format_bytes(total)} of {self._format_bytes(config.max_bytes)} "
            f"({budget_pct:.1f}%)"
        )

        by_tier = {}
        for entry in entries:
            tier = entry.key.rsplit('_', 1)[-1].split('.', 1)[0]
            count, size = by_tier.get(tier, (0, 0))
            by_tier[tier] = (count + 1, size + entry.size)
        for tier in sorted(by_tier, key=lambda t: int(t) if t.isdigit() else 0):
            count, size = by_tier[tier]
            self._print(f"    {tier:>5}px: {count:>8,} files, {self._format_bytes(size)}")

    def report_changeset(self, changeset: Changeset) -> None:
        """Print per-source results of a reconciliation pass."""
        self._print(f"Changes: {changeset.summary()}")
        for stats in changeset.stats.values():
            status = "" if stats.complete else " (incomplete)"
            self._print(
                f"  {stats.source_name}: {stats.seen} seen, {stats.added} added, "
                f"{stats.updated} updated, {stats.deleted} deleted{status}"
            )
        for error in changeset.errors:
            self._print(f"  [{error.kind}] {error.source_name}: {error.message}")
