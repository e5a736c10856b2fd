"""
Changeset - The minimal set of inventory operations produced by a reconciliation pass.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .picture_record import PictureKey, PictureRecord


@dataclass
class SourceError:
    """
    An error isolated to one source during a reconciliation pass.

    Attributes:
        source_id: Id of the failing source
        source_name: Name of the failing source
        kind: Error class name (e.g. 'PermissionDenied', 'SourceUnreachable')
        message: Human-readable message
    """
    source_id: int
    source_name: str
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {
            'source_id': self.source_id,
            'source_name': self.source_name,
            'kind': self.kind,
            'message': self.message,
        }


@dataclass
class SourceScanStats:
    """Per-source counters for one reconciliation pass."""
    source_id: int
    source_name: str
    seen: int = 0
    unchanged: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    complete: bool = True


@dataclass
class Changeset:
    """
    Adds, updates and deletes across all sources of one pass.

    Attributes:
        adds: New records (no id yet)
        updates: Changed records carrying the existing record's id
        deletes: Identities (source id, identifier) to remove
        errors: Per-source errors; sibling sources are unaffected
        stats: Per-source counters keyed by source id
    """
    adds: List[PictureRecord] = field(default_factory=list)
    updates: List[PictureRecord] = field(default_factory=list)
    deletes: List[PictureKey] = field(default_factory=list)
    errors: List[SourceError] = field(default_factory=list)
    stats: Dict[int, SourceScanStats] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """True when applying the changeset would change nothing."""
        return not (self.adds or self.updates or self.deletes)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def summary(self) -> str:
        return (
            f"{len(self.adds)} added, {len(self.updates)} updated, "
            f"{len(self.deletes)} deleted, {len(self.errors)} source errors"
        )
