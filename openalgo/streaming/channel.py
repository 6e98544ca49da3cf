"""
Event channel between the read loop and the consumer.

Bounded FIFO. Backpressure policy:
- BLOCK (default): a full channel blocks the producer (the read loop)
  until the consumer catches up or the stream is shut down. Nothing is
  dropped.
- DROP_OLDEST: a full channel discards its oldest event to make room and
  counts the drop.
"""

import queue
import threading
import time
from collections import deque
from enum import Enum
from typing import Deque, Iterator, Optional

from .types import StreamEvent


class OverflowPolicy(str, Enum):
    """What the producer does when the channel is full."""
    BLOCK = "block"
    DROP_OLDEST = "drop_oldest"


class EventChannel:
    """Ordered, bounded, thread-safe event queue with close semantics."""

    def __init__(
        self,
        maxsize: int = 10000,
        overflow: OverflowPolicy = OverflowPolicy.BLOCK,
        poll_interval: float = 0.1
    ):
        """
        Initialize event channel.

        Args:
            maxsize: Maximum buffered events
            overflow: Policy applied when full
            poll_interval: How often a blocked producer re-checks cancellation
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self.maxsize = maxsize
        self.overflow = OverflowPolicy(overflow)
        self.poll_interval = poll_interval

        self._items: Deque[StreamEvent] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._dropped = 0

    def put(self, event: StreamEvent, cancel: Optional[threading.Event] = None) -> bool:
        """
        Enqueue an event, honoring the overflow policy.

        Args:
            event: Event to deliver
            cancel: Aborts a blocked put when set

        Returns:
            True if enqueued, False if the channel is closed or the put was cancelled
        """
        with self._cond:
            while True:
                if self._closed:
                    return False
                if len(self._items) < self.maxsize:
                    break
                if self.overflow is OverflowPolicy.DROP_OLDEST:
                    self._items.popleft()
                    self._dropped += 1
                    break
                if cancel is not None and cancel.is_set():
                    return False
                self._cond.wait(self.poll_interval)

            self._items.append(event)
            self._cond.notify_all()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """
        Dequeue the next event.

        Args:
            timeout: Seconds to wait (None waits forever)

        Returns:
            Next event, or None once the channel is closed and drained

        Raises:
            queue.Empty: If the timeout expires first
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while not self._items:
                if self._closed:
                    return None
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise queue.Empty
                    self._cond.wait(remaining)

            event = self._items.popleft()
            self._cond.notify_all()
            return event

    def wake(self) -> None:
        """Wake blocked producers so they re-check cancellation."""
        with self._cond:
            self._cond.notify_all()

    def close(self) -> None:
        """Stop accepting events; buffered events remain readable."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped(self) -> int:
        return self._dropped

    def qsize(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[StreamEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event
