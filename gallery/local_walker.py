"""
LocalWalker - Recursive directory walk for local folder sources.
"""

import logging
import os
import threading
from typing import Iterator, List, Mapping, Optional, Tuple

from .errors import DecodeFailure, NotFound, PermissionDenied
from .image_probe import ImageProbe
from .picture_record import DataSource, PictureRecord
from .source_walker import Observation, SourceWalker, is_supported_image


class LocalWalker(SourceWalker):
    """
    Walks a local directory.

    Files whose (modified, size) fingerprint matches the existing record are
    passed through without being opened. New or changed files are probed for
    dimensions and metadata; a decode failure only degrades the record.
    """

    kind = 'local'

    def __init__(
        self,
        probe: Optional[ImageProbe] = None,
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        super().__init__(logger, cancel_event)
        self.probe = probe or ImageProbe(logger=self.logger)

    def walk(
        self,
        source: DataSource,
        existing: Mapping[str, PictureRecord]
    ) -> Iterator[Observation]:
        root = self._root_for(source)
        files = self.list_files(
            root,
            recursive=self._is_recursive(source),
            excluded=self._excluded_for(source),
            source_name=source.name,
        )
        total = len(files)
        self.logger.debug(f"{source.name}: {total} candidate files under {root}")

        for index, (identifier, full_path) in enumerate(files):
            try:
                stat = os.stat(full_path)
            except FileNotFoundError:
                self.logger.debug(f"File vanished during scan: {full_path}")
                continue
            except PermissionError as e:
                raise PermissionDenied(f"Cannot read {identifier}: {e}", source.name)

            modified = stat.st_mtime_ns // 1_000_000
            size = stat.st_size
            status_text = f"Scanning {source.name}..."
            fraction = (index + 1) / total if total else 1.0
            current = existing.get(identifier)

            if current is not None and current.matches(modified, size):
                yield Observation(identifier, None, index, total, status_text, fraction)
                continue

            record = PictureRecord(
                source_id=source.id,
                name=os.path.basename(full_path),
                identifier=identifier,
                modified=modified,
                size=size,
            )
            try:
                info = self.probe.probe(full_path)
                record.width = info.width
                record.height = info.height
                record.metadata = info.metadata
            except DecodeFailure as e:
                self.logger.warning(f"Could not get dimensions for {identifier}: {e.message}")

            yield Observation(identifier, record, index, total, status_text, fraction)

    def _root_for(self, source: DataSource) -> str:
        if not source.path:
            raise NotFound("Source has no folder path configured", source.name)
        if not os.path.exists(source.path):
            raise NotFound(f"Folder does not exist: {source.path}", source.name)
        if not os.access(source.path, os.R_OK | os.X_OK):
            raise PermissionDenied(f"Folder is not readable: {source.path}", source.name)
        return source.path

    def _is_recursive(self, source: DataSource) -> bool:
        return source.include_subfolders

    def _excluded_for(self, source: DataSource) -> List[str]:
        return source.excluded_folders

    @staticmethod
    def is_excluded(relative_dir: str, excluded: List[str]) -> bool:
        """True if a relative folder is an excluded folder or lies under one."""
        for folder in excluded:
            folder = folder.strip('/')
            if not folder:
                continue
            if relative_dir == folder or relative_dir.startswith(folder + '/'):
                return True
        return False

    def list_files(
        self,
        root: str,
        recursive: bool = True,
        excluded: Optional[List[str]] = None,
        source_name: Optional[str] = None
    ) -> List[Tuple[str, str]]:
        """
        List supported image files under a root.

        Returns:
            Sorted list of (relative identifier with '/' separators, full path)

        Raises:
            PermissionDenied: If any folder in the walk cannot be read
        """
        excluded = excluded or []
        files: List[Tuple[str, str]] = []
        pending = ['']

        while pending:
            relative_dir = pending.pop()
            full_dir = os.path.join(root, relative_dir) if relative_dir else root
            try:
                with os.scandir(full_dir) as listing:
                    entries = sorted(listing, key=lambda e: e.name)
            except PermissionError as e:
                raise PermissionDenied(f"Cannot read folder {full_dir}: {e}", source_name)
            except FileNotFoundError:
                if not relative_dir:
                    raise NotFound(f"Folder does not exist: {root}", source_name)
                continue

            for entry in entries:
                if entry.name.startswith('.'):
                    continue
                relative = f"{relative_dir}/{entry.name}" if relative_dir else entry.name
                if entry.is_dir(follow_symlinks=False):
                    if recursive and not self.is_excluded(relative, excluded):
                        pending.append(relative)
                elif entry.is_file() and is_supported_image(entry.name):
                    files.append((relative, entry.path))

        files.sort()
        return files
