"""Elapsed-time progress reporting for long blocking calls."""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProgressTicker:
    """Calls `on_tick(elapsed_seconds)` every `interval` seconds until stopped.

    Runs on a daemon thread that only waits on an Event, so it shares no
    state with the call it decorates. It stops when `stop()` is called or,
    when a `timeout` is given, once that deadline passes. Use it as a
    context manager to guarantee the thread is stopped and joined:

        with ProgressTicker(3, report):
            schemas = discoverer.discover(timeout=60)
    """

    def __init__(
        self,
        interval: float,
        on_tick: Callable[[float], None],
        timeout: Optional[float] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.on_tick = on_tick
        self.timeout = timeout
        self.ticks = 0
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = 0.0

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started_at

    def start(self) -> "ProgressTicker":
        if self._thread is not None:
            return self
        self._started_at = time.monotonic()
        self._thread = threading.Thread(target=self._run, name="progress-ticker", daemon=True)
        self._thread.start()
        return self

    def stop(self):
        self._done.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def _run(self):
        while not self._done.wait(self.interval):
            if self.timeout is not None and self.elapsed >= self.timeout:
                return
            self.ticks += 1
            try:
                self.on_tick(self.elapsed)
            except Exception:
                logger.exception("Progress callback failed; stopping ticker")
                return

    def __enter__(self) -> "ProgressTicker":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
