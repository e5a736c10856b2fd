"""
PictureRecord and DataSource - Inventory records and the sources that own them.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple


SOURCE_KINDS = ('local', 'remote', 'server')

# (source id, stable relative identifier)
PictureKey = Tuple[int, str]


@dataclass
class PictureRecord:
    """
    Record for a single picture observed in a source.

    Attributes:
        source_id: Id of the owning data source
        name: Display name (usually the file name)
        identifier: Stable relative identifier (relative path or absolute URL)
        modified: Last-modified timestamp in milliseconds since the epoch
        size: Size in bytes, when known
        width: Pixel width, when known
        height: Pixel height, when known
        metadata: Best-effort extracted metadata block
        id: Inventory id, assigned by the persistence side
    """
    source_id: int
    name: str
    identifier: str
    modified: int
    size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    id: Optional[int] = None

    @property
    def key(self) -> PictureKey:
        """Identity of the record; never the display name or the id."""
        return (self.source_id, self.identifier)

    @property
    def fingerprint(self) -> Tuple[int, Optional[int]]:
        """Cheap (timestamp, size) signature."""
        return (self.modified, self.size)

    def matches(self, modified: int, size: Optional[int]) -> bool:
        """True if the given fingerprint equals this record's fingerprint."""
        return self.fingerprint == (modified, size)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'PictureRecord':
        """Create from dictionary."""
        return cls(
            source_id=data['source_id'],
            name=data['name'],
            identifier=data['identifier'],
            modified=data['modified'],
            size=data.get('size'),
            width=data.get('width'),
            height=data.get('height'),
            metadata=data.get('metadata'),
            id=data.get('id'),
        )


@dataclass
class FieldMapping:
    """Dot-paths locating url, name and modified fields in a remote item."""
    url: str
    name: str
    modified: Optional[str] = None


@dataclass
class RemoteConfig:
    """
    Configuration for a paginated remote API source.

    Attributes:
        url: Endpoint template; ``{{ expr }}`` is evaluated per page
        method: 'GET' (params in query string) or 'POST' (params in JSON body)
        headers: Request headers, credentials included
        body: JSON template for request parameters
        response_path: Dot-path to the array of items in each response
        field_mapping: Dot-paths for item fields
        max_images: Optional cap on items crawled
        base_url: Prefixed onto relative item URLs
    """
    url: str
    field_mapping: FieldMapping
    method: str = 'GET'
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    response_path: str = ''
    max_images: Optional[int] = None
    base_url: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'RemoteConfig':
        method = (data.get('method') or 'GET').upper()
        if method not in ('GET', 'POST'):
            raise ValueError(f"Unsupported method for remote source: {method}")
        return cls(
            url=data['url'],
            field_mapping=FieldMapping(**data['field_mapping']),
            method=method,
            headers=dict(data.get('headers') or {}),
            body=data.get('body'),
            response_path=data.get('response_path', ''),
            max_images=data.get('max_images'),
            base_url=data.get('base_url'),
        )


@dataclass
class DataSource:
    """
    A configured origin of pictures.

    Attributes:
        id: Source id
        kind: One of 'local', 'remote', 'server'
        name: Display name
        enabled: Disabled sources are never walked
        path: Root directory for local and server sources
        include_subfolders: Recurse into subdirectories (local)
        excluded_folders: Relative folders whose whole sub-tree is skipped (local)
        remote: Remote API configuration (remote)
        picture_count: Derived count of owned pictures
    """
    id: int
    kind: str
    name: str
    enabled: bool = True
    path: Optional[str] = None
    include_subfolders: bool = False
    excluded_folders: List[str] = field(default_factory=list)
    remote: Optional[RemoteConfig] = None
    picture_count: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['remote'] = self.remote.to_dict() if self.remote else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'DataSource':
        kind = data.get('kind', 'local')
        if kind not in SOURCE_KINDS:
            raise ValueError(f"Unknown source kind: {kind}")
        remote = data.get('remote')
        return cls(
            id=int(data['id']),
            kind=kind,
            name=data['name'],
            enabled=bool(data.get('enabled', True)),
            path=data.get('path'),
            include_subfolders=bool(data.get('include_subfolders', False)),
            excluded_folders=list(data.get('excluded_folders') or []),
            remote=RemoteConfig.from_dict(remote) if remote else None,
            picture_count=data.get('picture_count', 0),
        )
