"""
Server source mapping: which mounted folders are published as server sources.

The mapping comes from the SERVER_SOURCES environment variable, a JSON list
of {"name": ..., "path": ...} objects. Without it, every immediate
non-hidden subdirectory of the mount root becomes a source named after it.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from .picture_record import DataSource

DEFAULT_MOUNT_ROOT = '/data/pictures'

logger = logging.getLogger(__name__)


@dataclass
class ServerSource:
    name: str
    path: str


def parse_server_sources(raw: str) -> List[ServerSource]:
    """
    Parse the SERVER_SOURCES JSON value.

    Raises:
        ValueError: If the value is not a list of {name, path} objects
            or a name appears twice
    """
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("SERVER_SOURCES must be a JSON list")
    sources = []
    seen = set()
    for item in data:
        if not isinstance(item, dict) or not item.get('name') or not item.get('path'):
            raise ValueError(f"Invalid server source entry: {item!r}")
        name = str(item['name'])
        if name in seen:
            raise ValueError(f"Duplicate server source name: {name!r}")
        seen.add(name)
        sources.append(ServerSource(name=name, path=str(item['path'])))
    return sources


def discover_server_sources(mount_root: str) -> List[ServerSource]:
    """One source per immediate non-hidden subdirectory of mount_root."""
    if not os.path.isdir(mount_root):
        logger.warning(f"Server mount root {mount_root} does not exist")
        return []
    with os.scandir(mount_root) as listing:
        names = sorted(
            entry.name for entry in listing
            if entry.is_dir() and not entry.name.startswith('.')
        )
    return [ServerSource(name=name, path=os.path.join(mount_root, name)) for name in names]


def load_server_sources(
    env: Optional[Mapping[str, str]] = None,
    mount_root: Optional[str] = None
) -> List[ServerSource]:
    """
    Resolve the server source mapping from the environment.

    An unparseable SERVER_SOURCES value is logged and auto-discovery is used
    instead.
    """
    env = os.environ if env is None else env
    raw = env.get('SERVER_SOURCES')
    if raw:
        try:
            sources = parse_server_sources(raw)
            logger.info(f"Using {len(sources)} server sources from SERVER_SOURCES")
            return sources
        except ValueError as e:
            logger.error(f"Ignoring invalid SERVER_SOURCES: {e}")

    root = mount_root or env.get('SERVER_MOUNT_ROOT', DEFAULT_MOUNT_ROOT)
    sources = discover_server_sources(root)
    logger.info(f"Discovered {len(sources)} server sources under {root}")
    return sources


def to_data_sources(
    server_sources: Iterable[ServerSource],
    existing: Iterable[DataSource] = ()
) -> List[DataSource]:
    """
    Build server DataSources, keeping the id of an existing source with the
    same name so that picture identities survive restarts.
    """
    existing = list(existing)
    ids_by_name = {s.name: s.id for s in existing}
    next_id = max([s.id for s in existing] + [0]) + 1

    result = []
    for server_source in server_sources:
        source_id = ids_by_name.get(server_source.name)
        if source_id is None:
            source_id = next_id
            ids_by_name[server_source.name] = source_id
            next_id += 1
        result.append(DataSource(
            id=source_id,
            kind='server',
            name=server_source.name,
            path=server_source.path,
            include_subfolders=True,
        ))
    return result
