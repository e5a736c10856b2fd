"""
Picture gallery backend: inventory reconciliation and a tiered thumbnail cache.

Two cooperating halves:
    1. Reconciliation: walk local, remote and server sources and diff them
       against the inventory into a source-scoped changeset
    2. Thumbnail cache: deterministic tiered cache keys, single-flight
       generation, eviction and idle pregeneration
"""

__version__ = "1.0.0"

from .errors import (
    GalleryError, PermissionDenied, SourceUnreachable, DecodeFailure,
    PathTraversal, NotFound, ScanCancelled,
)
from .picture_record import PictureRecord, DataSource, RemoteConfig, FieldMapping
from .changeset import Changeset, SourceError
from .cache_config import CacheConfig
from .inventory import Inventory
from .reconciler import Reconciler
from .scan_worker import ScanWorker
from .scan_messages import ScanRequest, ProgressReport, ErrorReport, CompletionReport
from .tiering import select_tier, cache_key
from .thumbnail_generator import ThumbnailGenerator
from .cache_metadata import CacheMetadataStore, CacheEntry
from .thumbnail_cache import ThumbnailCache
from .evictor import Evictor
from .pregenerator import IdlePregenerator
from .rescan_scheduler import DebouncedRescan
from .server_inventory import ServerInventory

__all__ = [
    "GalleryError",
    "PermissionDenied",
    "SourceUnreachable",
    "DecodeFailure",
    "PathTraversal",
    "NotFound",
    "ScanCancelled",
    "PictureRecord",
    "DataSource",
    "RemoteConfig",
    "FieldMapping",
    "Changeset",
    "SourceError",
    "CacheConfig",
    "Inventory",
    "Reconciler",
    "ScanWorker",
    "ScanRequest",
    "ProgressReport",
    "ErrorReport",
    "CompletionReport",
    "select_tier",
    "cache_key",
    "ThumbnailGenerator",
    "CacheMetadataStore",
    "CacheEntry",
    "ThumbnailCache",
    "Evictor",
    "IdlePregenerator",
    "DebouncedRescan",
    "ServerInventory",
]
