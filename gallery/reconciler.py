"""
Reconciler - Diffs what source walkers observe against the existing inventory.
"""

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional

from .changeset import Changeset, SourceError, SourceScanStats
from .errors import GalleryError, ScanCancelled
from .local_walker import LocalWalker
from .picture_record import DataSource, PictureKey, PictureRecord
from .remote_walker import RemoteWalker
from .scan_messages import ProgressReport
from .scan_progress import ScanProgress
from .server_walker import ServerWalker
from .source_walker import SourceWalker


class Reconciler:
    """
    Produces a source-scoped changeset from one reconciliation pass.

    Only sources in the scan scope are walked, and only records of sources in
    the scope can ever be proposed for deletion. A source whose walk did not
    complete (permission revoked, remote crawl halted) contributes its adds
    and updates but no deletions.
    """

    def __init__(
        self,
        walkers: Optional[Dict[str, SourceWalker]] = None,
        progress_interval: int = 20,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize reconciler.

        Args:
            walkers: Walker per source kind (defaults to local, remote, server)
            progress_interval: Report progress every N items within a source
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        if walkers is None:
            walkers = {
                'local': LocalWalker(logger=self.logger),
                'remote': RemoteWalker(logger=self.logger),
                'server': ServerWalker(logger=self.logger),
            }
        self.walkers = walkers
        self.progress_interval = max(1, progress_interval)
        self._last_progress = 0.0

    def reconcile(
        self,
        sources: List[DataSource],
        existing: Iterable[PictureRecord],
        scope: Optional[Iterable[int]] = None,
        progress: Optional[ScanProgress] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> Changeset:
        """
        Run one reconciliation pass.

        Args:
            sources: Source configurations
            existing: Snapshot of the current inventory (all sources)
            scope: Ids of sources to scan (None = every given source)
            progress: Optional progress tracker for callbacks
            cancel_event: Set to abandon the pass

        Returns:
            Changeset of adds, updates and deletes

        Raises:
            ScanCancelled: If cancel_event was set during the pass
        """
        start_time = time.time()
        scope_ids = set(scope) if scope is not None else {s.id for s in sources}
        in_scope = [s for s in sources if s.id in scope_ids]

        lookup: Dict[PictureKey, PictureRecord] = {}
        by_source: Dict[int, Dict[str, PictureRecord]] = {}
        for record in existing:
            lookup[record.key] = record
            by_source.setdefault(record.source_id, {})[record.identifier] = record

        changeset = Changeset()
        self._last_progress = 0.0
        self._report(progress, 0.0, 'Starting scan...')

        for position, source in enumerate(in_scope):
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCancelled("Scan cancelled")
            if not source.enabled:
                self.logger.info(f"Skipping disabled source: {source.name}")
                continue

            stats = SourceScanStats(source_id=source.id, source_name=source.name)
            changeset.stats[source.id] = stats
            self._scan_source(
                source, lookup, by_source.get(source.id, {}), changeset, stats,
                position, len(in_scope), progress, cancel_event
            )
            self._report(
                progress, (position + 1) / len(in_scope) * 100,
                f"Finished {source.name}", source.name
            )

        self._report(progress, 100.0, 'Finalizing...')
        self.logger.info(
            f"Reconciliation complete: {changeset.summary()} "
            f"({time.time() - start_time:.1f}s)"
        )
        return changeset

    def _scan_source(
        self,
        source: DataSource,
        lookup: Dict[PictureKey, PictureRecord],
        existing_for_source: Dict[str, PictureRecord],
        changeset: Changeset,
        stats: SourceScanStats,
        position: int,
        source_total: int,
        progress: Optional[ScanProgress],
        cancel_event: Optional[threading.Event]
    ) -> None:
        """Walk one source and merge its results into the changeset."""
        if progress:
            progress.on_source_start(source)
        else:
            self.logger.info(f"Scanning source: {source.name}")

        seen = set()
        try:
            walker = self.walkers.get(source.kind)
            if walker is None:
                raise GalleryError(f"No walker for source kind {source.kind!r}", source.name)
            walker.cancel_event = cancel_event

            for observation in walker.walk(source, existing_for_source):
                if cancel_event is not None and cancel_event.is_set():
                    raise ScanCancelled("Scan cancelled")
                if observation.identifier in seen:
                    continue
                seen.add(observation.identifier)

                if observation.unchanged:
                    stats.unchanged += 1
                else:
                    record = observation.record
                    current = lookup.get((source.id, observation.identifier))
                    if current is None:
                        changeset.adds.append(record)
                        stats.added += 1
                    else:
                        record.id = current.id
                        changeset.updates.append(record)
                        stats.updated += 1

                if progress:
                    progress.on_observation(source, observation)
                if observation.index % self.progress_interval == 0:
                    overall = (position + observation.fraction) / source_total * 100
                    self._report(
                        progress, overall, observation.status_text,
                        source.name, observation.index
                    )
        except ScanCancelled:
            raise
        except (GalleryError, OSError) as e:
            stats.complete = False
            error = SourceError(
                source_id=source.id,
                source_name=source.name,
                kind=type(e).__name__,
                message=e.message if isinstance(e, GalleryError) else str(e),
            )
            changeset.errors.append(error)
            if progress:
                progress.on_source_error(error)
            else:
                self.logger.warning(f"Source {source.name} failed: {error.message}")

        stats.seen = len(seen)
        if stats.complete:
            for identifier, record in existing_for_source.items():
                if identifier not in seen:
                    changeset.deletes.append(record.key)
                    stats.deleted += 1

        if progress:
            progress.on_source_complete(stats)

    def _report(
        self,
        progress: Optional[ScanProgress],
        value: float,
        status_text: str,
        source_name: Optional[str] = None,
        file_index: Optional[int] = None
    ) -> None:
        """Emit a progress report, never moving backwards."""
        value = min(100.0, max(self._last_progress, value))
        self._last_progress = value
        if progress:
            progress.on_progress(ProgressReport(value, status_text, source_name, file_index))
