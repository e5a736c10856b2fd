"""
FolderWatcher - Filesystem change notifications for server-mounted roots.
"""

import logging
import os
from typing import Callable, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .source_walker import is_supported_image

IGNORED_EVENT_TYPES = ('opened', 'closed', 'closed_no_write')


def is_hidden_path(path: str) -> bool:
    """True if any component of the path is dot-prefixed."""
    return any(part.startswith('.') for part in path.replace('\\', '/').split('/') if part not in ('', '.', '..'))


class PictureEventHandler(FileSystemEventHandler):
    """Forwards picture and folder changes, ignoring hidden paths."""

    def __init__(self, on_change: Callable[[str], object], roots: Optional[List[str]] = None):
        super().__init__()
        self.on_change = on_change
        self.roots = roots if roots is not None else []

    def _relative(self, path: str) -> str:
        for root in self.roots:
            root_abs = os.path.abspath(root)
            if os.path.commonpath([root_abs, os.path.abspath(path)]) == root_abs:
                return os.path.relpath(path, root_abs)
        return path

    def relevant(self, event: FileSystemEvent) -> bool:
        if event.event_type in IGNORED_EVENT_TYPES:
            return False
        paths = [event.src_path]
        dest = getattr(event, 'dest_path', '')
        if dest:
            paths.append(dest)
        for path in paths:
            path = os.fsdecode(path)
            if is_hidden_path(self._relative(path)):
                continue
            if event.is_directory or is_supported_image(os.path.basename(path)):
                return True
        return False

    def on_any_event(self, event: FileSystemEvent) -> None:
        if self.relevant(event):
            self.on_change(f"{event.event_type} {os.fsdecode(event.src_path)}")


class FolderWatcher:
    """
    Watches a set of root folders recursively with a watchdog Observer.

    Usage:
        watcher = FolderWatcher(debouncer.trigger)
        watcher.watch(['/data/pictures/Field'])
        ...
        watcher.stop()
    """

    def __init__(
        self,
        on_change: Callable[[str], object],
        logger: Optional[logging.Logger] = None,
        observer_factory: Callable[[], Observer] = Observer
    ):
        self.on_change = on_change
        self.logger = logger or logging.getLogger(__name__)
        self.observer_factory = observer_factory
        self.roots: List[str] = []
        self.handler = PictureEventHandler(on_change, self.roots)
        self._observer = None

    def watch(self, roots: Iterable[str]) -> List[str]:
        """
        (Re)start watching the given roots; missing folders are skipped.

        Returns:
            Roots actually watched
        """
        roots = list(roots)
        self.stop()
        self._observer = self.observer_factory()
        self.roots.clear()
        for root in roots:
            if not os.path.isdir(root):
                self.logger.warning(f"Not watching missing folder {root}")
                continue
            self._observer.schedule(self.handler, root, recursive=True)
            self.roots.append(root)
        self._observer.start()
        self.logger.info(f"Watching {len(self.roots)} folders for changes")
        return self.roots

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
