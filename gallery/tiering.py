"""
Tier selection and cache key derivation.

Both functions are pure: the same inputs always resolve to the same tier and
the same on-disk location, so a thumbnail generated once is found again by
any later request for the same picture.
"""

import hashlib
import math
from typing import Sequence

DEFAULT_TIERS = (400, 800, 1600)

THUMBNAIL_EXTENSION = '.jpg'

SHARD_LENGTH = 2


def select_tier(width: float, dpr: float = 1.0, tiers: Sequence[int] = DEFAULT_TIERS) -> int:
    """
    Quantize a requested display width to a thumbnail tier.

    Args:
        width: Requested CSS width in pixels
        dpr: Device pixel ratio (values below 1 are treated as 1)
        tiers: Available tier widths

    Returns:
        Smallest tier not below width * dpr, else the largest tier

    Raises:
        ValueError: If width is not positive, width * dpr is not finite,
            or no tiers are given
    """
    if not tiers:
        raise ValueError("No thumbnail tiers configured")
    if width is None or width <= 0:
        raise ValueError(f"Width must be positive, got {width!r}")

    scaled = width * max(1.0, dpr or 1.0)
    if not math.isfinite(scaled):
        raise ValueError(f"Width must be finite, got width={width!r} dpr={dpr!r}")
    required = round(scaled)
    ordered = sorted(tiers)
    for tier in ordered:
        if tier >= required:
            return tier
    return ordered[-1]


def content_hash(source_name: str, identifier: str) -> str:
    """Hex SHA-1 of "<source>/<identifier>"."""
    return hashlib.sha1(f"{source_name}/{identifier}".encode('utf-8')).hexdigest()


def cache_key(source_name: str, identifier: str, tier: int) -> str:
    """
    Relative cache path for one (source, picture, tier).

    Example:
        cache_key('Field', 'a/b.jpg', 800) -> '3f/3f1c..._800.jpg'
    """
    digest = content_hash(source_name, identifier)
    return f"{digest[:SHARD_LENGTH]}/{digest}_{tier}{THUMBNAIL_EXTENSION}"
