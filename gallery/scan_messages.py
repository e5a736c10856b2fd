"""
Typed messages exchanged between a scan requester and the scan worker.

    ScanRequest      requester -> worker
    ProgressReport   worker -> requester, any number of times
    ErrorReport      worker -> requester, per-source (non-fatal) or fatal
    CompletionReport worker -> requester, once, carrying the full changeset
"""

from dataclasses import dataclass
from typing import List, Optional, Union

from .changeset import Changeset
from .picture_record import DataSource, PictureRecord


@dataclass
class ScanRequest:
    """
    Attributes:
        sources: Source configurations, credentials included
        existing: Snapshot of the current inventory
        scope: Ids of the sources to scan; deletions are limited to these.
            None means every source in ``sources``; an empty list scans nothing.
    """
    sources: List[DataSource]
    existing: List[PictureRecord]
    scope: Optional[List[int]] = None
    type: str = 'scan'


@dataclass
class ProgressReport:
    progress: float
    status_text: str
    source_name: Optional[str] = None
    file_index: Optional[int] = None
    type: str = 'progress'


@dataclass
class ErrorReport:
    message: str
    source_name: Optional[str] = None
    fatal: bool = False
    type: str = 'error'


@dataclass
class CompletionReport:
    changeset: Changeset
    type: str = 'complete'


ScanMessage = Union[ScanRequest, ProgressReport, ErrorReport, CompletionReport]
