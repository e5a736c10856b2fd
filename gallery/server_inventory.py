"""
ServerInventory - The server-side picture inventory and its lifecycle.

Loads the inventory snapshot at startup, reconciles server sources against
their mounted folders, applies the resulting changesets and persists the
snapshot again. Cached thumbnails of removed or changed pictures and of
vanished sources are dropped so they are regenerated from the new files.
"""

import logging
import threading
from typing import Callable, Iterable, List, Optional, Tuple

from .cache_config import CacheConfig
from .cache_metadata import CacheMetadataStore
from .changeset import Changeset
from .inventory import Inventory, InventoryVersionError
from .picture_record import DataSource, PictureRecord
from .reconciler import Reconciler
from .scan_progress import ScanProgress
from .server_sources import ServerSource, load_server_sources, to_data_sources
from .tiering import cache_key


class ServerInventory:
    """
    Owns the server inventory: sources, pictures and the snapshot file.

    Rescans are serialized; queries read whatever picture list was last
    swapped in.
    """

    def __init__(
        self,
        config: CacheConfig,
        metadata: Optional[CacheMetadataStore] = None,
        sources_provider: Callable[[], List[ServerSource]] = load_server_sources,
        reconciler: Optional[Reconciler] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            config: Cache configuration (snapshot path, tiers)
            metadata: Cache metadata store to purge stale thumbnails from
            sources_provider: Returns the current server source mapping
            reconciler: Reconciler used for rescans
            logger: Optional logger instance
        """
        self.config = config
        self.metadata = metadata
        self.sources_provider = sources_provider
        self.logger = logger or logging.getLogger(__name__)
        self.reconciler = reconciler or Reconciler(logger=self.logger)
        self.inventory = Inventory.create_new()
        self.listeners: List[Callable[[Changeset], object]] = []
        self._scan_lock = threading.Lock()
        self.last_changeset: Optional[Changeset] = None

    @property
    def sources(self) -> List[DataSource]:
        return self.inventory.sources

    def add_listener(self, listener: Callable[[Changeset], object]) -> None:
        """Register a callable invoked with every applied changeset."""
        self.listeners.append(listener)

    def load(self) -> bool:
        """
        Load the snapshot file.

        A missing, unreadable or outdated snapshot starts an empty inventory.

        Returns:
            True if a snapshot with pictures was loaded
        """
        path = self.config.inventory_path
        try:
            self.inventory = Inventory.load(path)
        except FileNotFoundError:
            self.logger.info(f"No inventory snapshot at {path}")
            self.inventory = Inventory.create_new()
        except InventoryVersionError as e:
            self.logger.warning(f"Ignoring inventory snapshot: {e}")
            self.inventory = Inventory.create_new()
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Ignoring unreadable inventory snapshot {path}: {e}")
            self.inventory = Inventory.create_new()
        return self.inventory.total_pictures > 0

    def start(self, schedule_rescan: Optional[Callable[[str], object]] = None) -> None:
        """
        Bring the inventory up to date after load.

        With a loaded snapshot the validation rescan is handed to
        ``schedule_rescan`` to run in the background; otherwise a full scan
        runs now.
        """
        if self.inventory.total_pictures > 0 and schedule_rescan is not None:
            self.refresh_sources()
            self.logger.info("Serving snapshot, validating in the background")
            schedule_rescan('startup validation')
        else:
            self.rescan()

    def refresh_sources(self) -> List[DataSource]:
        """
        Re-read the server source mapping.

        Returns:
            Sources that disappeared (their pictures and thumbnails are removed)
        """
        sources = to_data_sources(self.sources_provider(), self.inventory.sources)
        removed = self.inventory.set_sources(sources)
        for source in removed:
            self.logger.info(f"Server source {source.name} removed")
            if self.metadata is not None:
                self.metadata.purge_source(source.name)
        return removed

    def rescan(self, progress: Optional[ScanProgress] = None) -> Optional[Changeset]:
        """
        Reconcile every server source and apply the result.

        Returns:
            The applied changeset, or None if a rescan was already running
        """
        if not self._scan_lock.acquire(blocking=False):
            self.logger.info("Rescan already running")
            return None
        try:
            removed = self.refresh_sources()
            changeset = self.reconciler.reconcile(
                sources=self.inventory.sources,
                existing=list(self.inventory.pictures),
                progress=progress,
            )
            stale = self._stale_pictures(changeset)
            self.inventory.apply_changeset(changeset)
            self._drop_cached(stale)
            self.last_changeset = changeset

            if removed or not changeset.is_empty:
                self.save()
            self.logger.info(f"Rescan complete: {changeset.summary()}")
            for listener in self.listeners:
                listener(changeset)
            return changeset
        finally:
            self._scan_lock.release()

    def save(self) -> None:
        try:
            self.inventory.save(self.config.inventory_path)
        except OSError as e:
            self.logger.error(f"Failed to save inventory snapshot: {e}")

    def delete_source(self, name: str) -> int:
        """
        Delete a source with its pictures and cached thumbnails.

        Returns:
            Number of pictures removed
        """
        source = self.inventory.get_source_by_name(name)
        if source is None:
            return 0
        removed = self.inventory.delete_source(source.id)
        if self.metadata is not None:
            self.metadata.purge_source(name)
            self.metadata.persist_if_dirty()
        self.save()
        return removed

    def root_for(self, name: str) -> Optional[str]:
        source = self.inventory.get_source_by_name(name)
        if source is None or source.kind != 'server':
            return None
        return source.path

    def get_source_ids(self, names: Iterable[str]) -> List[int]:
        ids = []
        for name in names:
            source = self.inventory.get_source_by_name(name)
            if source is not None:
                ids.append(source.id)
        return ids

    def query(self, **kwargs) -> Tuple[List[PictureRecord], bool]:
        return self.inventory.query(**kwargs)

    def picture_items(self) -> List[Tuple[str, str]]:
        """(source name, identifier) of every picture, newest first."""
        names = {s.id: s.name for s in self.inventory.sources}
        ordered = sorted(self.inventory.pictures, key=lambda p: p.modified, reverse=True)
        return [(names[p.source_id], p.identifier) for p in ordered if p.source_id in names]

    def _stale_pictures(self, changeset: Changeset) -> List[Tuple[str, str]]:
        names = {s.id: s.name for s in self.inventory.sources}
        keys = [tuple(k) for k in changeset.deletes] + [r.key for r in changeset.updates]
        return [(names[source_id], identifier) for source_id, identifier in keys if source_id in names]

    def _drop_cached(self, pictures: List[Tuple[str, str]]) -> None:
        if self.metadata is None or not pictures:
            return
        dropped = 0
        for source_name, identifier in pictures:
            for tier in self.config.tiers:
                key = cache_key(source_name, identifier, tier)
                if self.metadata.get(key) is not None and self.metadata.remove(key):
                    dropped += 1
        if dropped:
            self.logger.info(f"Dropped {dropped} stale cached thumbnails")
            self.metadata.persist_if_dirty()
