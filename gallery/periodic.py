"""
PeriodicTask - Runs a callable on a fixed interval in a daemon thread.
"""

import logging
import threading
from typing import Callable, Optional


class PeriodicTask:
    """
    Calls ``func`` every ``interval`` seconds until stopped.

    Exceptions raised by ``func`` are logged and the task keeps running, so
    one failed maintenance cycle is retried on the next tick.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], object],
        logger: Optional[logging.Logger] = None
    ):
        self.name = name
        self.interval = interval
        self.func = func
        self.logger = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        self.logger.info(f"Started {self.name} every {self.interval:g}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def tick(self) -> None:
        """Run the callable once, logging any failure."""
        self.runs += 1
        try:
            self.func()
        except Exception as e:
            self.logger.exception(f"{self.name} failed: {e}")

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.tick()
