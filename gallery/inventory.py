"""
Inventory - Durable picture inventory: sources, picture records and snapshot I/O.
"""

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .atomic_file import write_json_atomic
from .changeset import Changeset
from .picture_record import DataSource, PictureRecord
from .source_stats import SourceStats

logger = logging.getLogger(__name__)


class InventoryVersionError(ValueError):
    """Raised when a snapshot was written by an incompatible version."""
    pass


@dataclass
class Inventory:
    """
    Picture inventory with its owning sources.

    Applies changesets transactionally: the new picture list is built aside
    and swapped in as a whole, so readers never observe a half-applied pass.

    Attributes:
        created_at: ISO timestamp when the inventory was created
        sources: Data sources
        pictures: Picture records
        next_picture_id: Next id handed to an added record
        updated_at: ISO timestamp of the last applied change
    """
    created_at: str
    sources: List[DataSource] = field(default_factory=list)
    pictures: List[PictureRecord] = field(default_factory=list)
    next_picture_id: int = 1
    updated_at: Optional[str] = None
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False, compare=False)

    VERSION = 1

    def get_source(self, source_id: int) -> Optional[DataSource]:
        for source in self.sources:
            if source.id == source_id:
                return source
        return None

    def get_source_by_name(self, name: str) -> Optional[DataSource]:
        for source in self.sources:
            if source.name == name:
                return source
        return None

    def records_for_source(self, source_id: int) -> List[PictureRecord]:
        return [p for p in self.pictures if p.source_id == source_id]

    def set_sources(self, sources: Iterable[DataSource]) -> List[DataSource]:
        """
        Replace the source list, cascading deletion to vanished sources.

        Returns:
            Sources that were removed
        """
        with self._lock:
            incoming = list(sources)
            incoming_ids = {s.id for s in incoming}
            removed = [s for s in self.sources if s.id not in incoming_ids]
            self.sources = incoming
            if removed:
                removed_ids = {s.id for s in removed}
                self.pictures = [p for p in self.pictures if p.source_id not in removed_ids]
                self._touch()
            self.recount()
            return removed

    def delete_source(self, source_id: int) -> int:
        """
        Delete a source and all of its pictures.

        Returns:
            Number of pictures removed
        """
        with self._lock:
            before = len(self.pictures)
            self.sources = [s for s in self.sources if s.id != source_id]
            self.pictures = [p for p in self.pictures if p.source_id != source_id]
            self._touch()
            self.recount()
            return before - len(self.pictures)

    def apply_changeset(self, changeset: Changeset) -> None:
        """Apply adds, updates and deletes, then recompute picture counts."""
        with self._lock:
            by_key: Dict[Tuple[int, str], PictureRecord] = {p.key: p for p in self.pictures}
            next_id = self.next_picture_id

            for key in changeset.deletes:
                by_key.pop(tuple(key), None)

            for record in list(changeset.updates) + list(changeset.adds):
                current = by_key.get(record.key)
                if current is not None:
                    by_key[record.key] = replace(record, id=current.id)
                else:
                    by_key[record.key] = replace(record, id=next_id)
                    next_id += 1

            self.pictures = list(by_key.values())
            self.next_picture_id = next_id
            if not changeset.is_empty:
                self._touch()
            self.recount()

    def recount(self) -> None:
        """Recompute the derived picture count of every source."""
        counts: Dict[int, int] = {}
        for picture in self.pictures:
            counts[picture.source_id] = counts.get(picture.source_id, 0) + 1
        for source in self.sources:
            source.picture_count = counts.get(source.id, 0)

    def query(
        self,
        source_ids: Optional[Iterable[int]] = None,
        source_name: Optional[str] = None,
        search_term: str = '',
        offset: int = 0,
        limit: int = 50
    ) -> Tuple[List[PictureRecord], bool]:
        """
        Page through pictures, newest first.

        Args:
            source_ids: Only pictures of these sources
            source_name: Only pictures of the named source ('all' = no filter)
            search_term: Case-insensitive substring of the display name
            offset: Number of pictures to skip
            limit: Page size

        Returns:
            Tuple of (page of pictures, has_more)
        """
        pictures = self.pictures

        if source_ids is not None:
            wanted = set(source_ids)
            pictures = [p for p in pictures if p.source_id in wanted]
        if source_name and source_name != 'all':
            source = self.get_source_by_name(source_name)
            if source is None:
                return [], False
            pictures = [p for p in pictures if p.source_id == source.id]
        if search_term:
            term = search_term.lower()
            pictures = [p for p in pictures if term in p.name.lower()]

        ordered = sorted(pictures, key=lambda p: p.modified, reverse=True)
        offset = max(0, offset)
        page = ordered[offset:offset + max(0, limit)]
        has_more = offset + len(page) < len(ordered)
        return page, has_more

    def source_stats(self) -> Dict[str, SourceStats]:
        """Statistics per source name."""
        stats = {s.id: SourceStats(name=s.name, kind=s.kind) for s in self.sources}
        for picture in self.pictures:
            entry = stats.get(picture.source_id)
            if entry is None:
                continue
            entry.total_pictures += 1
            entry.total_bytes += picture.size or 0
            if picture.width and picture.height:
                entry.with_dimensions += 1
        return {entry.name: entry for entry in stats.values()}

    @property
    def total_pictures(self) -> int:
        return len(self.pictures)

    def _touch(self) -> None:
        self.updated_at = datetime.now().isoformat()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        with self._lock:
            return {
                'version': self.VERSION,
                'created_at': self.created_at,
                'updated_at': self.updated_at,
                'next_picture_id': self.next_picture_id,
                'sources': [s.to_dict() for s in self.sources],
                'pictures': [p.to_dict() for p in self.pictures],
            }

    @classmethod
    def from_dict(cls, data: dict) -> 'Inventory':
        """
        Create from dictionary.

        Raises:
            InventoryVersionError: If the snapshot version does not match
        """
        if not isinstance(data, dict):
            raise ValueError("Inventory snapshot must be a JSON object")
        version = data.get('version')
        if version != cls.VERSION:
            raise InventoryVersionError(
                f"Inventory version {version!r} does not match {cls.VERSION}"
            )
        inventory = cls(
            created_at=data['created_at'],
            sources=[DataSource.from_dict(s) for s in data.get('sources', [])],
            pictures=[PictureRecord.from_dict(p) for p in data.get('pictures', [])],
            next_picture_id=data.get('next_picture_id', 1),
            updated_at=data.get('updated_at'),
        )
        known_ids = [p.id for p in inventory.pictures if p.id is not None]
        if known_ids:
            inventory.next_picture_id = max(inventory.next_picture_id, max(known_ids) + 1)
        inventory.recount()
        return inventory

    def save(self, filepath: str) -> None:
        """Save inventory to a JSON file atomically."""
        size = write_json_atomic(filepath, self.to_dict())
        logger.info(
            f"Inventory saved to {filepath}: {len(self.sources)} sources, "
            f"{len(self.pictures):,} pictures ({size / (1024 * 1024):.1f} MB)"
        )

    @classmethod
    def load(cls, filepath: str) -> 'Inventory':
        """
        Load inventory from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            InventoryVersionError: If the snapshot version does not match
        """
        path = Path(filepath)
        with open(path, 'r') as f:
            data = json.load(f)
        inventory = cls.from_dict(data)
        logger.info(
            f"Loaded inventory from {filepath}: {len(inventory.sources)} sources, "
            f"{len(inventory.pictures):,} pictures"
        )
        return inventory

    @classmethod
    def create_new(cls, sources: Optional[List[DataSource]] = None) -> 'Inventory':
        """Create a new empty inventory."""
        return cls(created_at=datetime.now().isoformat(), sources=list(sources or []))
