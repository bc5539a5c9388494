"""A small worker thread pool with optional completion fences."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .queues import FifoQueue, QueueEmpty

logger = logging.getLogger(__name__)

Task = Callable[[], object]


class Fence:
    """Signals waiting threads once an issued task has completed."""

    def __init__(self) -> None:
        self._done = threading.Event()

    @property
    def complete(self) -> bool:
        return self._done.is_set()

    def signal(self) -> None:
        """Mark the task complete and release every waiting thread."""
        self._done.set()

    def wait(self, timeout_ms: int = -1) -> bool:
        """Wait for completion; a negative timeout waits without limit.

        Returns True if the task completed.
        """
        if timeout_ms < 0:
            return self._done.wait()
        return self._done.wait(timeout_ms / 1000.0)


@dataclass
class _Callback:
    task: Task
    fence: Optional[Fence] = None


class ThreadPool:
    """Runs issued tasks in first-in-first-out order on worker threads."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("a thread pool needs at least one thread")
        self._tasks: FifoQueue[_Callback] = FifoQueue()
        self._cond = threading.Condition()
        self._active = True
        self._threads: List[threading.Thread] = [
            threading.Thread(target=self._process_tasks, daemon=True)
            for _ in range(size)
        ]
        for thread in self._threads:
            thread.start()

    @property
    def size(self) -> int:
        return len(self._threads)

    @property
    def active(self) -> bool:
        return self._active

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wait_until_complete()

    def issue_task(self, task: Task) -> None:
        """Queue a task; ignored once the pool is shutting down."""
        self._enqueue(_Callback(task))

    def issue_task_with_fence(self, task: Task) -> Optional[Fence]:
        """Queue a task and return a fence signalled after it succeeds.

        Returns None once the pool is shutting down.
        """
        fence = Fence()
        return fence if self._enqueue(_Callback(task, fence)) else None

    def wait_until_complete(self) -> None:
        """Stop accepting tasks, finish the queued ones and join the workers."""
        with self._cond:
            self._active = False
            self._cond.notify_all()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current and thread.is_alive():
                thread.join()

    def _enqueue(self, callback: _Callback) -> bool:
        with self._cond:
            if not self._active:
                return False
            self._tasks.push(callback)
            self._cond.notify()
        return True

    def _process_tasks(self) -> None:
        while True:
            with self._cond:
                while self._active and self._tasks.at_end():
                    self._cond.wait()
                if self._tasks.at_end():
                    return
            self._drain()

    def _drain(self) -> None:
        while True:
            try:
                callback = self._tasks.pop()
            except QueueEmpty:
                return
            try:
                callback.task()
            except Exception as error:  # a failing task must not kill the worker
                logger.error("Exception thrown on async callback thread: %s", error)
                continue
            if callback.fence is not None:
                callback.fence.signal()


def create_thread_pool(size: Optional[int] = None) -> ThreadPool:
    """Create a pool with ``size`` workers, one per CPU by default."""
    return ThreadPool(size if size is not None else (os.cpu_count() or 1))