"""
CacheConfig - Configuration for the thumbnail cache and its maintenance tasks.
"""

import os
from dataclasses import dataclass, field
from typing import List, Tuple


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class CacheConfig:
    """
    Thumbnail cache configuration.

    Attributes:
        cache_dir: Directory holding generated thumbnails (sharded by key prefix)
        metadata_path: JSON file with per-key cache metadata
        inventory_path: JSON snapshot of the server-side inventory
        max_bytes: Byte budget for the cache directory
        target_fraction: Fraction of the budget to shrink to when over budget
        ttl_seconds: Entries not accessed for this long are evicted
        sweep_interval: Seconds between eviction sweeps
        pregen_interval: Seconds between idle pregeneration ticks
        idle_seconds: No cache activity for this long counts as idle
        batch_size: Items per pregeneration batch
        batch_delay: Seconds to wait between pregeneration batches
        quality: JPEG quality for thumbnails
        rescan_delay: Debounce delay for filesystem-triggered rescans
        tiers: Thumbnail widths, smallest first
    """
    cache_dir: str = 'cache/thumbnails'
    metadata_path: str = 'cache/thumbnail-metadata.json'
    inventory_path: str = 'cache/server-inventory.json'
    max_bytes: int = 2 * 1024 * 1024 * 1024
    target_fraction: float = 0.8
    ttl_seconds: float = 7 * 24 * 3600
    sweep_interval: float = 6 * 3600
    pregen_interval: float = 30.0
    idle_seconds: float = 5.0
    batch_size: int = 5
    batch_delay: float = 1.0
    quality: int = 85
    rescan_delay: float = 5.0
    tiers: Tuple[int, ...] = field(default=(400, 800, 1600))

    @classmethod
    def from_env(cls) -> 'CacheConfig':
        """Create configuration from environment variables."""
        defaults = cls()
        tiers_env = os.getenv('THUMBNAIL_TIERS')
        tiers = defaults.tiers
        if tiers_env:
            tiers = tuple(sorted(int(t) for t in tiers_env.split(',') if t.strip()))

        cache_root = os.getenv('CACHE_ROOT')
        cache_dir = defaults.cache_dir
        metadata_path = defaults.metadata_path
        inventory_path = defaults.inventory_path
        if cache_root:
            cache_dir = os.path.join(cache_root, 'thumbnails')
            metadata_path = os.path.join(cache_root, 'thumbnail-metadata.json')
            inventory_path = os.path.join(cache_root, 'server-inventory.json')

        return cls(
            cache_dir=os.getenv('CACHE_DIR', cache_dir),
            metadata_path=os.getenv('CACHE_METADATA_FILE', metadata_path),
            inventory_path=os.getenv('INVENTORY_CACHE_FILE', inventory_path),
            max_bytes=_env_int('CACHE_MAX_BYTES', defaults.max_bytes),
            target_fraction=_env_float('CACHE_TARGET_FRACTION', defaults.target_fraction),
            ttl_seconds=_env_float('CACHE_TTL_SECONDS', defaults.ttl_seconds),
            sweep_interval=_env_float('CACHE_SWEEP_INTERVAL', defaults.sweep_interval),
            pregen_interval=_env_float('PREGEN_INTERVAL', defaults.pregen_interval),
            idle_seconds=_env_float('PREGEN_IDLE_SECONDS', defaults.idle_seconds),
            batch_size=_env_int('PREGEN_BATCH_SIZE', defaults.batch_size),
            batch_delay=_env_float('PREGEN_BATCH_DELAY', defaults.batch_delay),
            quality=_env_int('THUMBNAIL_QUALITY', defaults.quality),
            rescan_delay=_env_float('RESCAN_DEBOUNCE_DELAY', defaults.rescan_delay),
            tiers=tiers,
        )

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        if not self.cache_dir:
            errors.append("CACHE_DIR is required")
        if not self.metadata_path:
            errors.append("CACHE_METADATA_FILE is required")
        if self.max_bytes <= 0:
            errors.append("CACHE_MAX_BYTES must be positive")
        if not 0 < self.target_fraction <= 1:
            errors.append("CACHE_TARGET_FRACTION must be in (0, 1]")
        if self.ttl_seconds <= 0:
            errors.append("CACHE_TTL_SECONDS must be positive")
        if self.batch_size < 1:
            errors.append("PREGEN_BATCH_SIZE must be at least 1")
        if not 1 <= self.quality <= 100:
            errors.append("THUMBNAIL_QUALITY must be between 1 and 100")
        if len(self.tiers) != 3 or any(t <= 0 for t in self.tiers):
            errors.append("THUMBNAIL_TIERS must list 3 positive widths")
        elif list(self.tiers) != sorted(set(self.tiers)):
            errors.append("THUMBNAIL_TIERS must be strictly increasing")
        return errors
