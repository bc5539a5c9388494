"""Thread-safe first-in-first-out and last-in-first-out queues.

Both queues may be shared between any number of producer and consumer
threads. Every pushed item is handed out exactly once.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Generic, List, TypeVar

T = TypeVar("T")


class QueueEmpty(Exception):
    """Raised when an item is popped from a queue that holds none."""


class FifoQueue(Generic[T]):
    """A first-in-first-out queue safe for concurrent producers and consumers."""

    def __init__(self) -> None:
        self._items: Deque[T] = deque()
        self._lock = threading.Lock()

    def push(self, item: T) -> None:
        """Append an item to the growing end of the queue."""
        with self._lock:
            self._items.append(item)

    def pop(self) -> T:
        """Remove and return the oldest item.

        Raises QueueEmpty when no item is pending.
        """
        with self._lock:
            if not self._items:
                raise QueueEmpty("no pending entry in the queue")
            return self._items.popleft()

    def at_end(self) -> bool:
        """Return True when no item is waiting to be popped."""
        with self._lock:
            return not self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class LifoQueue(Generic[T]):
    """A last-in-first-out queue safe for concurrent producers and consumers."""

    def __init__(self) -> None:
        self._items: List[T] = []
        self._lock = threading.Lock()

    def push(self, item: T) -> None:
        """Place an item on top of the stack."""
        with self._lock:
            self._items.append(item)

    def pop(self) -> T:
        """Remove and return the most recently pushed item.

        Raises QueueEmpty when the stack holds nothing.
        """
        with self._lock:
            if not self._items:
                raise QueueEmpty("no pending entry in the queue")
            return self._items.pop()

    def at_end(self) -> bool:
        """Return True when the stack holds no items."""
        with self._lock:
            return not self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)