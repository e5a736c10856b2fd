"""
ThumbnailCache - Serves tiered thumbnails from disk, generating them on demand.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Set, Tuple

from .atomic_file import write_bytes_atomic
from .cache_config import CacheConfig
from .cache_metadata import CacheMetadataStore
from .errors import DecodeFailure, NotFound, PathTraversal
from .thumbnail_generator import ThumbnailGenerator
from .tiering import cache_key, select_tier


@dataclass
class ThumbnailResult:
    """
    Attributes:
        path: Absolute path of the cached thumbnail file
        key: Cache key
        tier: Tier width
        generated: True if this call produced the file
    """
    path: Path
    key: str
    tier: int
    generated: bool = False
    content_type: str = ThumbnailGenerator.CONTENT_TYPE


class ThumbnailCache:
    """
    On-demand thumbnail cache with single-flight generation.

    Concurrent requests for the same uncached key share one generation: the
    first caller generates, the others wait on its event and are served from
    the file it wrote. If the first caller fails, each waiter retries once.
    """

    MAX_WAITS = 2

    def __init__(
        self,
        config: CacheConfig,
        metadata: CacheMetadataStore,
        root_for: Callable[[str], Optional[str]],
        generator: Optional[ThumbnailGenerator] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            config: Cache configuration (tiers, quality)
            metadata: Shared cache metadata store
            root_for: Returns the root folder of a source name, or None
            generator: Thumbnail generator (default: JPEG at config quality)
            logger: Optional logger instance
        """
        self.config = config
        self.metadata = metadata
        self.root_for = root_for
        self.logger = logger or logging.getLogger(__name__)
        self.generator = generator or ThumbnailGenerator(quality=config.quality, logger=self.logger)
        self._in_flight: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self.generation_count = 0

    def resolve_source_path(self, source_name: str, rel_path: str) -> Path:
        """
        Map a source-relative path to an absolute path under the source root.

        The check is purely lexical and happens before any file I/O.

        Raises:
            NotFound: Unknown source
            PathTraversal: Path escapes the source root
        """
        root = self.root_for(source_name)
        if not root:
            raise NotFound(f"Unknown source: {source_name}", source_name)
        if not rel_path or '\x00' in rel_path or os.path.isabs(rel_path):
            raise PathTraversal(f"Invalid path: {rel_path!r}", source_name)

        root_abs = os.path.abspath(root)
        candidate = os.path.normpath(os.path.join(root_abs, rel_path))
        if os.path.commonpath([root_abs, candidate]) != root_abs or candidate == root_abs:
            raise PathTraversal(f"Path escapes source root: {rel_path!r}", source_name)
        return Path(candidate)

    def get(self, source_name: str, rel_path: str, width: float, dpr: float = 1.0) -> ThumbnailResult:
        """
        Serve a thumbnail for a requested display width.

        Raises:
            ValueError: Non-positive width
            NotFound, PathTraversal, DecodeFailure
        """
        tier = select_tier(width, dpr, self.config.tiers)
        return self.ensure(source_name, rel_path, tier, accessed=True)

    def ensure(self, source_name: str, rel_path: str, tier: int, accessed: bool = True) -> ThumbnailResult:
        """
        Make sure the thumbnail for (source, path, tier) exists on disk.

        Args:
            accessed: Count this call as a request (False for pregeneration)
        """
        source_path = self.resolve_source_path(source_name, rel_path)
        identifier = self._identifier(source_name, source_path)
        key = cache_key(source_name, identifier, tier)

        waits = 0
        while True:
            if self.metadata.contains(key):
                if accessed:
                    self.metadata.touch(key)
                return ThumbnailResult(path=self.metadata.path_for(key), key=key, tier=tier)

            event, leader = self._claim(key)
            if leader:
                try:
                    return self._generate(source_name, identifier, source_path, key, tier, accessed)
                finally:
                    self._release(key, event)

            if waits >= self.MAX_WAITS:
                raise DecodeFailure(f"Thumbnail generation failed for {identifier}", source_name)
            self.logger.debug(f"Waiting for in-flight generation of {key}")
            event.wait()
            waits += 1

    def _identifier(self, source_name: str, source_path: Path) -> str:
        """Normalized source-relative path, so aliases of one file share a key."""
        root_abs = os.path.abspath(self.root_for(source_name))
        return Path(os.path.relpath(str(source_path), root_abs)).as_posix()

    def is_generating(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def in_flight_keys(self) -> Set[str]:
        with self._lock:
            return set(self._in_flight)

    def _claim(self, key: str) -> Tuple[threading.Event, bool]:
        with self._lock:
            event = self._in_flight.get(key)
            if event is not None:
                return event, False
            event = threading.Event()
            self._in_flight[key] = event
            return event, True

    def _release(self, key: str, event: threading.Event) -> None:
        with self._lock:
            self._in_flight.pop(key, None)
        event.set()

    def _generate(
        self,
        source_name: str,
        identifier: str,
        source_path: Path,
        key: str,
        tier: int,
        accessed: bool
    ) -> ThumbnailResult:
        if not source_path.is_file():
            raise NotFound(f"Image not found: {identifier}", source_name)

        with self._lock:
            self.generation_count += 1
        data = self.generator.generate(str(source_path), tier)

        target = self.metadata.path_for(key)
        write_bytes_atomic(str(target), data)
        self.metadata.record(key, len(data), source=source_name, identifier=identifier, accessed=accessed)
        self.logger.debug(f"Generated {key} ({len(data)} bytes) for {source_name}/{identifier}")
        return ThumbnailResult(path=target, key=key, tier=tier, generated=True)
