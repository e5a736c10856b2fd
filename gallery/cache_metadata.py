"""
CacheMetadataStore - Durable bookkeeping for generated thumbnails.

One entry per cache key records its size, creation time, last access and
access count. The store lives in memory, is loaded once at startup and is
written back atomically; every mutation and every write happen under the
same lock so a persisted file is never torn.
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .atomic_file import write_json_atomic
from .tiering import THUMBNAIL_EXTENSION


@dataclass
class CacheEntry:
    """
    Attributes:
        key: Relative cache path ("ab/abcdef..._800.jpg")
        size: File size in bytes
        created_at: Epoch seconds when the file was generated
        last_accessed_at: Epoch seconds of the last served request
        access_count: Number of requests served from this entry
        source: Source name the thumbnail was made from
        identifier: Picture identifier within the source
    """
    key: str
    size: int
    created_at: float
    last_accessed_at: float
    access_count: int = 0
    source: Optional[str] = None
    identifier: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'CacheEntry':
        return cls(
            key=data['key'],
            size=int(data.get('size', 0)),
            created_at=float(data.get('created_at', 0)),
            last_accessed_at=float(data.get('last_accessed_at', data.get('created_at', 0))),
            access_count=int(data.get('access_count', 0)),
            source=data.get('source'),
            identifier=data.get('identifier'),
        )


class CacheMetadataStore:
    """
    In-process cache metadata shared by the thumbnail cache, the evictor and
    the pregenerator.
    """

    VERSION = 1

    def __init__(
        self,
        cache_dir: str,
        metadata_path: str,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            cache_dir: Root directory of the sharded thumbnail files
            metadata_path: JSON file the entries are persisted to
            logger: Optional logger instance
            clock: Time source returning epoch seconds
        """
        self.cache_dir = Path(cache_dir)
        self.metadata_path = Path(metadata_path)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._dirty = False
        self._last_activity = 0.0

    def load(self) -> int:
        """
        Load entries from the metadata file.

        A missing file starts an empty store; an unreadable one is logged and
        discarded, the files on disk are adopted again by the next sweep.

        Returns:
            Number of entries loaded
        """
        with self._lock:
            self._entries = {}
            if not self.metadata_path.exists():
                self.logger.info(f"No cache metadata at {self.metadata_path}, starting empty")
                return 0
            try:
                with open(self.metadata_path, 'r') as f:
                    data = json.load(f)
                if data.get('version') != self.VERSION:
                    raise ValueError(f"unsupported version {data.get('version')!r}")
                for item in data.get('entries', []):
                    entry = CacheEntry.from_dict(item)
                    self._entries[entry.key] = entry
            except (OSError, ValueError, KeyError, TypeError) as e:
                self.logger.warning(f"Discarding unreadable cache metadata {self.metadata_path}: {e}")
                self._entries = {}
            self._dirty = False
            self.logger.info(f"Loaded {len(self._entries):,} cache entries")
            return len(self._entries)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / key

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            return replace(entry) if entry else None

    def contains(self, key: str) -> bool:
        """True when the entry exists and its file is still on disk."""
        with self._lock:
            if key not in self._entries:
                return False
            if not self.path_for(key).is_file():
                self._drop(key)
                return False
            return True

    def record(
        self,
        key: str,
        size: int,
        source: Optional[str] = None,
        identifier: Optional[str] = None,
        accessed: bool = True
    ) -> CacheEntry:
        """
        Register a freshly generated thumbnail.

        Args:
            accessed: True when generated for a request; pregenerated entries
                start with no accesses and do not count as activity
        """
        now = self.clock()
        entry = CacheEntry(
            key=key,
            size=size,
            created_at=now,
            last_accessed_at=now,
            access_count=1 if accessed else 0,
            source=source,
            identifier=identifier,
        )
        with self._lock:
            self._entries[key] = entry
            self._dirty = True
            if accessed:
                self._last_activity = now
        return replace(entry)

    def touch(self, key: str) -> Optional[CacheEntry]:
        """
        Record a cache hit. Returns None and forgets the entry if its file
        has disappeared.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self.path_for(key).is_file():
                self._drop(key)
                return None
            now = self.clock()
            entry.last_accessed_at = now
            entry.access_count += 1
            self._dirty = True
            self._last_activity = now
            return replace(entry)

    def remove(self, key: str, delete_file: bool = True) -> Optional[int]:
        """
        Delete an entry and its file.

        Returns:
            Bytes freed, or None if the file could not be deleted
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return 0
            if delete_file:
                try:
                    self.path_for(key).unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    self.logger.warning(f"Could not delete cached file {key}: {e}")
                    return None
            self._drop(key)
            return entry.size

    def entries(self) -> List[CacheEntry]:
        """Snapshot copies of all entries."""
        with self._lock:
            return [replace(e) for e in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

    def total_bytes(self) -> int:
        with self._lock:
            return sum(e.size for e in self._entries.values())

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def is_idle(self, idle_seconds: float) -> bool:
        """True when no request touched the cache within idle_seconds."""
        return self.clock() - self._last_activity >= idle_seconds

    @property
    def dirty(self) -> bool:
        return self._dirty

    def persist(self) -> bool:
        """
        Write all entries atomically.

        Failures are logged and leave the store dirty so that the next
        maintenance cycle retries.
        """
        with self._lock:
            data = {
                'version': self.VERSION,
                'entries': [e.to_dict() for e in self._entries.values()],
            }
            try:
                write_json_atomic(str(self.metadata_path), data)
            except OSError as e:
                self.logger.error(f"Failed to persist cache metadata to {self.metadata_path}: {e}")
                self._dirty = True
                return False
            self._dirty = False
            self.logger.debug(f"Persisted {len(self._entries):,} cache entries")
            return True

    def persist_if_dirty(self) -> bool:
        if not self._dirty:
            return True
        return self.persist()

    def keys_for_source(self, source: str) -> List[str]:
        with self._lock:
            return [k for k, e in self._entries.items() if e.source == source]

    def purge_source(self, source: str) -> int:
        """
        Remove every cached thumbnail made from a source.

        Returns:
            Number of entries removed
        """
        removed = 0
        for key in self.keys_for_source(source):
            if self.remove(key) is not None:
                removed += 1
        if removed:
            self.logger.info(f"Purged {removed} cached thumbnails of source {source}")
        return removed

    def prune_missing(self) -> int:
        """Forget entries whose backing file no longer exists."""
        with self._lock:
            missing = [k for k in self._entries if not self.path_for(k).is_file()]
            for key in missing:
                self._drop(key)
        if missing:
            self.logger.info(f"Pruned {len(missing)} cache entries without files")
        return len(missing)

    def adopt_untracked(self) -> int:
        """
        Register thumbnail files present on disk but unknown to the store,
        e.g. after the metadata file was lost.
        """
        if not self.cache_dir.is_dir():
            return 0
        adopted = 0
        with self._lock:
            for shard in sorted(os.scandir(self.cache_dir), key=lambda d: d.name):
                if not shard.is_dir() or shard.name.startswith('.'):
                    continue
                for item in os.scandir(shard.path):
                    if item.name.startswith('.') or not item.name.endswith(THUMBNAIL_EXTENSION):
                        continue
                    key = f"{shard.name}/{item.name}"
                    if key in self._entries:
                        continue
                    st = item.stat()
                    self._entries[key] = CacheEntry(
                        key=key,
                        size=st.st_size,
                        created_at=st.st_mtime,
                        last_accessed_at=st.st_mtime,
                        access_count=0,
                    )
                    adopted += 1
            if adopted:
                self._dirty = True
        if adopted:
            self.logger.info(f"Adopted {adopted} untracked thumbnail files")
        return adopted

    def _drop(self, key: str) -> None:
        self._entries.pop(key, None)
        self._dirty = True
