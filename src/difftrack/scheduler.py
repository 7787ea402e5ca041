"""Periodic trigger for change-tracker poll ticks."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)


class PollScheduler:
    """Fires ``callback`` every ``interval`` seconds.

    A daemon timer thread only dispatches ticks; the tick body runs on a single worker
    thread. A tick that comes due while the previous one is still running is skipped.
    Exceptions raised by the callback are logged and do not stop the schedule.
    """

    def __init__(self, interval: float, callback: Callable[[], object], *, name: str = "difftrack-poll") -> None:
        if interval <= 0:
            raise ValueError("Poll interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._inflight: Future[None] | None = None
        self.ticks = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-tick")
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=self.name,
                daemon=True,
            )
            self._thread.start()
        logger.debug("Poll scheduler started (every %.2fs)", self.interval)

    def stop(self, *, wait: bool = True) -> None:
        """Stop scheduling new ticks. A tick already running is allowed to finish."""

        with self._lock:
            thread, executor = self._thread, self._executor
            self._stop_event.set()
            self._thread = None
            self._executor = None
            self._inflight = None

        if thread is not None and thread is not threading.current_thread() and wait:
            thread.join()
        if executor is not None:
            executor.shutdown(wait=wait and not _is_worker_thread(self.name))
        if thread is not None:
            logger.debug("Poll scheduler stopped")

    def trigger(self) -> bool:
        """Dispatch a tick immediately. Returns ``False`` if it was skipped."""

        with self._lock:
            executor = self._executor
            if executor is None:
                return False
            if self._inflight is not None and not self._inflight.done():
                self.skipped += 1
                logger.debug("Previous poll tick still running; skipping")
                return False
            self.ticks += 1
            self._inflight = executor.submit(self._tick)
            return True

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self.trigger()
            except RuntimeError:
                # executor shut down between the wait and the submit
                break

    def _tick(self) -> None:
        try:
            self.callback()
        except Exception:  # noqa: BLE001
            logger.exception("Poll tick failed")


def _is_worker_thread(name: str) -> bool:
    return threading.current_thread().name.startswith(f"{name}-tick")
