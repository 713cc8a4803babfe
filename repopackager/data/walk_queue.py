"""
FIFO buffer between the repository tree walk and package processing.
"""
from __future__ import annotations

from collections import deque
from enum import Enum
from typing import Callable, Deque, Generic, Optional, TypeVar

from repopackager.domain.events import Listeners

T = TypeVar("T")


class QueueSignal(str, Enum):
    ENQUEUED = "enqueued"
    DEQUEUED = "dequeued"
    EMPTIED = "emptied"


class WalkQueue(Generic[T]):
    """
    Queue of pending candidates that announces its own changes.

    ``EMPTIED`` is signalled each time a ``next()`` call leaves the queue
    empty. The owning repository drains the queue by length and does not
    listen itself; the signals are for external observers of scan progress.
    Only meant to be used from a single asyncio task.
    """

    def __init__(self) -> None:
        self._items: Deque[T] = deque()
        self._listeners: Listeners[QueueSignal] = Listeners()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def length(self) -> int:
        return len(self._items)

    def subscribe(self, listener: Callable[[QueueSignal], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def once(self, signal: QueueSignal, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` the next time ``signal`` fires, then forget it."""
        unsubscribe: Callable[[], None]

        def listener(received: QueueSignal) -> None:
            if received is signal:
                unsubscribe()
                callback()

        unsubscribe = self._listeners.subscribe(listener)
        return unsubscribe

    def push(self, item: T) -> None:
        self._items.append(item)
        self._listeners.emit(QueueSignal.ENQUEUED)

    def next(self) -> Optional[T]:
        item = self._items.popleft() if self._items else None
        self._listeners.emit(QueueSignal.DEQUEUED)
        if not self._items and item is not None:
            self._listeners.emit(QueueSignal.EMPTIED)
        return item

    def clear(self) -> None:
        """Drop every pending item without signalling."""
        self._items.clear()
