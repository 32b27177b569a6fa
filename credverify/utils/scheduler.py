"""
Shared poll scheduler - one dispatcher thread plus a bounded worker pool.

Every active session owns one `ScheduledTask` at a time. The dispatcher sleeps
until the earliest due task, then hands it to the pool; sessions never get a
thread of their own. Tasks are one-shot: a recurring poll re-arms itself after
its round trip, so one session never has two polls in flight.
"""

import heapq
import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from credverify.observability.logging import log


class ScheduledTask:
    __slots__ = ("due", "seq", "fn", "name", "_cancelled")

    def __init__(self, due: float, seq: int, fn: Callable[[], None], name: str = ""):
        self.due = due
        self.seq = seq
        self.fn = fn
        self.name = name
        self._cancelled = False

    def __lt__(self, other: "ScheduledTask") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class PollScheduler:
    """
    Handles:
    - Dispatcher thread lifecycle (start/shutdown)
    - Delayed one-shot tasks with cancellation
    - Exception isolation (a failing task is logged, others keep running)
    """

    def __init__(self, max_workers: int = 8, name: str = "poll-scheduler"):
        self.name = name
        self._heap: List[ScheduledTask] = []
        self._cond = threading.Condition()
        self._seq = itertools.count()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix=name)

    def start(self) -> None:
        """Start the dispatcher thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name=f"{self.name}-dispatch", daemon=True)
        self._thread.start()

    def schedule(self, delay_sec: float, fn: Callable[[], None], name: str = "") -> ScheduledTask:
        if self._stop_event.is_set():
            raise RuntimeError(f"{self.name} is shut down")
        if not self._thread:
            self.start()
        task = ScheduledTask(time.monotonic() + max(0.0, float(delay_sec)), next(self._seq), fn, name)
        with self._cond:
            heapq.heappush(self._heap, task)
            self._cond.notify()
        return task

    def pending_count(self) -> int:
        with self._cond:
            return sum(1 for t in self._heap if not t.cancelled)

    def shutdown(self, wait: bool = True) -> None:
        """Stop dispatching; queued tasks are dropped, running ones may finish."""
        self._stop_event.set()
        with self._cond:
            for t in self._heap:
                t.cancel()
            self._heap.clear()
            self._cond.notify_all()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _next_due(self) -> Optional[ScheduledTask]:
        """Block until a task is due (or stop). Caller holds no lock."""
        with self._cond:
            while not self._stop_event.is_set():
                while self._heap and self._heap[0].cancelled:
                    heapq.heappop(self._heap)
                if not self._heap:
                    self._cond.wait()
                    continue
                wait_for = self._heap[0].due - time.monotonic()
                if wait_for <= 0:
                    return heapq.heappop(self._heap)
                self._cond.wait(timeout=wait_for)
        return None

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            task = self._next_due()
            if task is None:
                break
            if task.cancelled:
                continue
            try:
                self._executor.submit(self._run_task, task)
            except RuntimeError:
                # executor already shut down
                break

    def _run_task(self, task: ScheduledTask) -> None:
        if task.cancelled or self._stop_event.is_set():
            return
        try:
            task.fn()
        except Exception as e:
            log(
                event="scheduler_task_exception",
                task=task.name,
                errorType=type(e).__name__,
                error=str(e)[:300],
            )
