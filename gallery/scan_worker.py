"""
ScanWorker - Runs a reconciliation pass off the calling thread.

The requester and the worker share nothing but a message queue: the request
is deep-copied into the worker, and results travel back as ProgressReport,
ErrorReport and CompletionReport messages. The changeset is only delivered
once the whole pass has finished, so cancelling never leaves partial writes.
"""

import copy
import logging
import queue
import threading
from typing import Iterator, Optional

from .changeset import SourceError
from .errors import ScanCancelled
from .reconciler import Reconciler
from .scan_messages import (
    CompletionReport, ErrorReport, ProgressReport, ScanMessage, ScanRequest
)
from .scan_progress import ScanProgress


class _ChannelProgress(ScanProgress):
    """Progress tracker that forwards events onto the outbox queue."""

    def __init__(self, outbox: 'queue.Queue[ScanMessage]', logger: logging.Logger):
        super().__init__(logger=logger)
        self.outbox = outbox

    def on_progress(self, report: ProgressReport) -> None:
        super().on_progress(report)
        self.outbox.put(report)

    def on_source_error(self, error: SourceError) -> None:
        super().on_source_error(error)
        self.outbox.put(ErrorReport(
            message=f"Failed to scan {error.source_name}: {error.message}",
            source_name=error.source_name,
        ))


class ScanWorker:
    """
    Background worker executing one ScanRequest at a time.

    Usage:
        worker = ScanWorker()
        worker.submit(request)
        for message in worker.messages():
            ...
    """

    def __init__(
        self,
        reconciler: Optional[Reconciler] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.reconciler = reconciler or Reconciler(logger=self.logger)
        self.outbox: 'queue.Queue[ScanMessage]' = queue.Queue()
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, request: ScanRequest) -> None:
        """
        Start processing a request in the background.

        Raises:
            RuntimeError: If a scan is already running
        """
        if self.is_running:
            raise RuntimeError("A scan is already running")
        if request.type != 'scan':
            raise ValueError(f"Unsupported request type: {request.type}")

        self._cancel_event = threading.Event()
        isolated = copy.deepcopy(request)
        self._thread = threading.Thread(
            target=self._run, args=(isolated, self._cancel_event),
            name='scan-worker', daemon=True
        )
        self._thread.start()

    def cancel(self) -> None:
        """Abandon the running scan; no CompletionReport will be sent."""
        self._cancel_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def messages(self, timeout: Optional[float] = None) -> Iterator[ScanMessage]:
        """
        Yield messages until the scan completes or fails fatally.

        Args:
            timeout: Seconds to wait for each message (None = forever)

        Raises:
            queue.Empty: If no message arrives within the timeout
        """
        while True:
            message = self.outbox.get(timeout=timeout)
            yield message
            if isinstance(message, CompletionReport):
                return
            if isinstance(message, ErrorReport) and message.fatal:
                return

    def _run(self, request: ScanRequest, cancel_event: threading.Event) -> None:
        progress = _ChannelProgress(self.outbox, self.logger)
        try:
            changeset = self.reconciler.reconcile(
                sources=request.sources,
                existing=request.existing,
                scope=request.scope,
                progress=progress,
                cancel_event=cancel_event,
            )
        except ScanCancelled:
            self.logger.info("Scan cancelled")
            self.outbox.put(ErrorReport(message="Scan cancelled", fatal=True))
        except Exception as e:
            self.logger.exception(f"Scan failed: {e}")
            self.outbox.put(ErrorReport(message=str(e), fatal=True))
        else:
            self.outbox.put(CompletionReport(changeset=changeset))
