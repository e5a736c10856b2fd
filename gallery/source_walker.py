"""
SourceWalker - Base class for the per-kind source walk strategies.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional

from .errors import ScanCancelled
from .picture_record import DataSource, PictureRecord


SUPPORTED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.svg')


def is_supported_image(filename: str) -> bool:
    """True for non-hidden files with a supported image extension."""
    return not filename.startswith('.') and filename.lower().endswith(SUPPORTED_EXTENSIONS)


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class Observation:
    """
    One item observed by a walker.

    Attributes:
        identifier: Stable relative identifier of the item
        record: Fresh record, or None when the fingerprint matched the
            existing record and no work was done
        index: Zero-based position of the item in the walk
        total: Number of items in the walk, when known up front
        status_text: Human-readable progress text
        fraction: Progress within the source (0.0 - 1.0)
    """
    identifier: str
    record: Optional[PictureRecord]
    index: int
    total: Optional[int]
    status_text: str
    fraction: float

    @property
    def unchanged(self) -> bool:
        return self.record is None


class SourceWalker:
    """
    Walks one data source and yields an Observation per item.

    Subclasses implement ``walk``. Walkers never mutate the existing records
    they are handed; they only read fingerprints from them.
    """

    kind: str = ''

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.cancel_event = cancel_event

    def walk(
        self,
        source: DataSource,
        existing: Mapping[str, PictureRecord]
    ) -> Iterator[Observation]:
        """
        Walk a source.

        Args:
            source: The source to walk
            existing: Existing records of this source keyed by identifier

        Yields:
            Observation for every item seen
        """
        raise NotImplementedError

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ScanCancelled("Scan cancelled")
