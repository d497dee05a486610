import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 2
DEFAULT_MAXSIZE = 1000
DEFAULT_SUBMIT_TIMEOUT = 0.5
POLL_INTERVAL = 0.2


class RefreshQueue:
    """Bounded work queue for best-effort aggregate refreshes.

    Tasks run once on a pool of daemon worker threads. A failing task is
    logged and counted, never retried. When the queue is full, ``submit``
    waits up to ``submit_timeout`` seconds and then drops the task.
    """

    def __init__(
        self,
        workers: int = DEFAULT_WORKERS,
        maxsize: int = DEFAULT_MAXSIZE,
        submit_timeout: float = DEFAULT_SUBMIT_TIMEOUT,
    ) -> None:
        self.workers = max(1, workers)
        self.submit_timeout = submit_timeout
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, maxsize))
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._idle = threading.Condition()
        self._pending = 0
        self._processed = 0
        self._failed = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads) and not self._stop_event.is_set()

    def start(self) -> None:
        """Start the worker threads."""
        if self.running:
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._run, name=f"refresh-worker-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Refresh queue started with %d workers", self.workers)

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> bool:
        """Queue ``fn(*args)``. Returns False when the task was not accepted."""
        with self._idle:
            accepted = self.running
            if accepted:
                self._pending += 1
            else:
                self._dropped += 1
        if not accepted:
            logger.warning("Refresh queue is not running, dropping %s", name)
            return False

        try:
            self._queue.put((name, fn, args), timeout=self.submit_timeout)
        except queue.Full:
            logger.warning("Refresh queue full, dropping %s", name)
            self._task_finished()
            self._count_drop()
            return False

        if self._stop_event.is_set():
            # stop() may have swept the queue before this put landed
            self._discard_queued()
            return False
        return True

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until every accepted task has run. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Stop the workers, by default after the queued tasks have run."""
        if drain and self.running and not self.join(timeout):
            logger.warning("Refresh queue did not drain within %.1fs", timeout)
        with self._idle:
            self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._discard_queued()
        logger.info("Refresh queue stopped")

    def stats(self) -> dict:
        with self._idle:
            return {
                "pending": self._pending,
                "processed": self._processed,
                "failed": self._failed,
                "dropped": self._dropped,
                "workers": self.workers,
                "running": self.running,
            }

    def _count_drop(self) -> None:
        with self._idle:
            self._dropped += 1

    def _discard_queued(self) -> None:
        abandoned = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            abandoned += 1
            self._task_finished()
        if abandoned:
            logger.warning("Refresh queue stopped with %d tasks abandoned", abandoned)
            with self._idle:
                self._dropped += abandoned

    def _task_finished(self) -> None:
        with self._idle:
            self._pending -= 1
            if not self._pending:
                self._idle.notify_all()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                name, fn, args = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue

            try:
                fn(*args)
            except Exception:
                logger.exception("Refresh task %s failed", name)
                with self._idle:
                    self._failed += 1
            else:
                with self._idle:
                    self._processed += 1
            finally:
                self._task_finished()
