"""
DebouncedRescan - Coalesces bursts of change notifications into one rescan.
"""

import logging
import threading
from typing import Callable, Optional


class DebouncedRescan:
    """
    Every trigger restarts a delay timer; the rescan runs only once the delay
    elapses without further triggers. While a rescan is running, triggers are
    dropped rather than queued, so passes never overlap.
    """

    def __init__(
        self,
        rescan: Callable[[], object],
        delay: float = 5.0,
        logger: Optional[logging.Logger] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer
    ):
        """
        Args:
            rescan: Callable performing the rescan
            delay: Quiet period in seconds before the rescan runs
            logger: Optional logger instance
            timer_factory: Builds the delay timer (threading.Timer signature)
        """
        self.rescan = rescan
        self.delay = delay
        self.logger = logger or logging.getLogger(__name__)
        self.timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._scanning = False
        self.triggers = 0
        self.runs = 0

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def trigger(self, reason: str = '') -> bool:
        """
        Note a change and (re)start the delay timer.

        Returns:
            False if the trigger was dropped because a rescan is running
        """
        with self._lock:
            if self._scanning:
                self.logger.debug(f"Rescan in progress, ignoring change {reason}")
                return False
            self.triggers += 1
            if self._timer is not None:
                self._timer.cancel()
            timer = self.timer_factory(self.delay, lambda: self._fire(timer))
            timer.daemon = True
            self._timer = timer
            timer.start()
        if reason:
            self.logger.debug(f"Change detected ({reason}), rescan in {self.delay:g}s")
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def run_now(self) -> bool:
        """
        Rescan immediately, dropping any pending timer.

        Returns:
            False if a rescan was already running
        """
        self.cancel()
        return self._run()

    def _fire(self, timer) -> None:
        with self._lock:
            # superseded by a later trigger or cancelled
            if self._timer is not timer:
                return
            self._timer = None
        self._run()

    def _run(self) -> bool:
        with self._lock:
            if self._scanning:
                return False
            self._scanning = True
        try:
            self.runs += 1
            self.rescan()
        except Exception as e:
            self.logger.exception(f"Rescan failed: {e}")
        finally:
            with self._lock:
                self._scanning = False
        return True
